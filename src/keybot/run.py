"""
CLI runner for keybot.

Usage:
    python -m keybot.run [OPTIONS]

    # Run the bot
    python -m keybot.run

    # Watch a different channel
    python -m keybot.run --channel key-lending

    # Show channels the bot can see and exit
    python -m keybot.run --list-channels
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import BotConfig
from .errors import AuthenticationError, ChannelNotFoundError
from .session import SessionController
from .transport import SlackMessageBus

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("keybot")


def build_bus(config: BotConfig) -> SlackMessageBus:
    return SlackMessageBus(
        bot_token=config.slack.get_bot_token() or "",
        app_token=config.slack.get_app_token() or "",
    )


async def list_channels(config: BotConfig) -> int:
    """Print every channel the bot can access."""
    bus = build_bus(config)
    await bus.identify()
    channels = await bus.list_channels()
    print("Accessible channels:")
    for channel in channels:
        print(f"- {channel.get('name')} ({channel.get('id')})")
    return 0


async def check(config: BotConfig) -> int:
    """Verify the token and that the configured channel exists."""
    bus = build_bus(config)
    await bus.identify()
    channel_id = await bus.resolve_channel(config.slack.channel_name)
    logger.info(f"OK: channel {config.slack.channel_name} is {channel_id}")
    return 0


async def serve(config: BotConfig) -> None:
    controller = SessionController(config, build_bus(config))
    await controller.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="keybot: track who has the shared access cards",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
    SLACK_BOT_TOKEN   Bot token (xoxb-...)
    SLACK_APP_TOKEN   App-level token for Socket Mode (xapp-...)
    CHANNEL_NAME      Channel to watch (default: general)
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("keybot.yaml"),
        help="Path to config file (default: keybot.yaml)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Environment file to load (default: .env)",
    )
    parser.add_argument(
        "--channel",
        type=str,
        help="Override the channel to watch",
    )
    parser.add_argument(
        "--list-channels",
        action="store_true",
        help="List channels the bot can access and exit",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate config and credentials, then exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    if not load_dotenv(args.env_file):
        print(
            f"Warning: could not load {args.env_file}; relying on the process environment",
            file=sys.stderr,
        )

    config = BotConfig.from_yaml(args.config)
    config.apply_env()
    if args.channel:
        config.slack.channel_name = args.channel

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    problems = config.validate()
    if problems:
        for problem in problems:
            logger.error(problem)
        return 1

    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Channel: {config.slack.channel_name}")
    logger.info(f"Settings: {config.to_dict()}")

    try:
        if args.list_channels:
            return asyncio.run(list_channels(config))
        if args.check:
            return asyncio.run(check(config))

        logger.info("Starting keybot...")
        asyncio.run(serve(config))
    except AuthenticationError as e:
        logger.error(f"Invalid credentials: {e}")
        return 1
    except ChannelNotFoundError as e:
        logger.error(f"Bot initialization failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception:
        logger.exception("keybot stopped on an unexpected error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
