"""
Configuration for keybot.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

DEFAULT_CHANNEL = "general"


@dataclass
class SlackConfig:
    """Slack workspace connection settings."""

    bot_token: str | None = None
    bot_token_env: str = "SLACK_BOT_TOKEN"
    app_token: str | None = None  # Socket Mode app-level token (xapp-...)
    app_token_env: str = "SLACK_APP_TOKEN"
    channel_name: str = DEFAULT_CHANNEL

    def get_bot_token(self) -> str | None:
        """Get bot token from config or environment."""
        if self.bot_token:
            return self.bot_token
        return os.environ.get(self.bot_token_env) or None

    def get_app_token(self) -> str | None:
        """Get app-level token from config or environment."""
        if self.app_token:
            return self.app_token
        return os.environ.get(self.app_token_env) or None


@dataclass
class LendingConfig:
    """Key inventory and overdue policy."""

    allowed_keys: tuple[str, ...] = ("13", "14", "15")
    overdue_threshold_hours: float = 48
    overdue_check_interval_minutes: float = 60
    timezone: str | None = None  # IANA name; None uses the host's local time
    timestamp_format: str = "%Y-%m-%d %H:%M"

    @property
    def overdue_threshold(self) -> timedelta:
        return timedelta(hours=self.overdue_threshold_hours)

    @property
    def overdue_check_interval(self) -> timedelta:
        return timedelta(minutes=self.overdue_check_interval_minutes)

    def get_tzinfo(self) -> tzinfo | None:
        """Resolve the display timezone, or None for local time."""
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)


@dataclass
class BotConfig:
    """Complete keybot configuration."""

    slack: SlackConfig = field(default_factory=SlackConfig)
    lending: LendingConfig = field(default_factory=LendingConfig)
    reconnect_backoff_seconds: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BotConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "reconnect_backoff_seconds" in data:
            config.reconnect_backoff_seconds = float(data["reconnect_backoff_seconds"])
        if "log_level" in data:
            config.log_level = str(data["log_level"]).upper()

        if "slack" in data:
            slack = data["slack"] or {}
            config.slack = SlackConfig(
                bot_token=slack.get("bot_token"),
                bot_token_env=slack.get("bot_token_env", "SLACK_BOT_TOKEN"),
                app_token=slack.get("app_token"),
                app_token_env=slack.get("app_token_env", "SLACK_APP_TOKEN"),
                channel_name=slack.get("channel_name", DEFAULT_CHANNEL),
            )

        if "lending" in data:
            lending = data["lending"] or {}
            defaults = LendingConfig()
            keys = lending.get("allowed_keys", defaults.allowed_keys)
            config.lending = LendingConfig(
                # YAML turns bare 13 into an int
                allowed_keys=tuple(str(k) for k in keys),
                overdue_threshold_hours=float(
                    lending.get("overdue_threshold_hours", defaults.overdue_threshold_hours)
                ),
                overdue_check_interval_minutes=float(
                    lending.get(
                        "overdue_check_interval_minutes", defaults.overdue_check_interval_minutes
                    )
                ),
                timezone=lending.get("timezone"),
                timestamp_format=lending.get("timestamp_format", defaults.timestamp_format),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "BotConfig":
        """Load config from the ``keybot:`` section of a YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("keybot", {}) or {})

    def apply_env(self) -> None:
        """Let CHANNEL_NAME in the environment override the channel."""
        channel = os.environ.get("CHANNEL_NAME")
        if channel:
            self.slack.channel_name = channel

    def validate(self) -> list[str]:
        """Return a list of problems; empty means the config is usable."""
        problems = []
        if not self.slack.get_bot_token():
            problems.append(f"Set {self.slack.bot_token_env} (bot token)")
        if not self.slack.get_app_token():
            problems.append(f"Set {self.slack.app_token_env} (Socket Mode app token)")
        if not self.slack.channel_name:
            problems.append("channel_name must not be empty")
        if not self.lending.allowed_keys:
            problems.append("allowed_keys must list at least one key")
        if self.lending.overdue_threshold_hours <= 0:
            problems.append("overdue_threshold_hours must be positive")
        if self.lending.overdue_check_interval_minutes <= 0:
            problems.append("overdue_check_interval_minutes must be positive")
        if self.reconnect_backoff_seconds < 0:
            problems.append("reconnect_backoff_seconds must not be negative")
        try:
            self.lending.get_tzinfo()
        except (ZoneInfoNotFoundError, ValueError):
            problems.append(f"Unknown timezone: {self.lending.timezone}")
        return problems

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging. Tokens are left out."""
        return {
            "reconnect_backoff_seconds": self.reconnect_backoff_seconds,
            "log_level": self.log_level,
            "slack": {
                "channel_name": self.slack.channel_name,
                "bot_token_env": self.slack.bot_token_env,
                "app_token_env": self.slack.app_token_env,
            },
            "lending": {
                "allowed_keys": list(self.lending.allowed_keys),
                "overdue_threshold_hours": self.lending.overdue_threshold_hours,
                "overdue_check_interval_minutes": self.lending.overdue_check_interval_minutes,
                "timezone": self.lending.timezone,
                "timestamp_format": self.lending.timestamp_format,
            },
        }
