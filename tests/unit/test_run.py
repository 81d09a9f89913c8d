"""Tests for the CLI runner."""

import pytest

from keybot import run
from keybot.errors import AuthenticationError, ChannelNotFoundError


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Tokens in the environment, no config file, no .env."""
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-test")
    monkeypatch.setenv("SLACK_APP_TOKEN", "xapp-test")
    monkeypatch.delenv("CHANNEL_NAME", raising=False)
    return ["--config", str(tmp_path / "keybot.yaml"), "--env-file", str(tmp_path / ".env")]


def test_missing_tokens_exit_1(cli_env, monkeypatch):
    monkeypatch.delenv("SLACK_BOT_TOKEN")

    assert run.main(cli_env) == 1


def test_auth_failure_exit_1(cli_env, monkeypatch):
    async def fake_serve(config):
        raise AuthenticationError("invalid_auth")

    monkeypatch.setattr(run, "serve", fake_serve)

    assert run.main(cli_env) == 1


def test_missing_channel_exit_1(cli_env, monkeypatch):
    seen = {}

    async def fake_serve(config):
        seen["channel"] = config.slack.channel_name
        raise ChannelNotFoundError(config.slack.channel_name)

    monkeypatch.setattr(run, "serve", fake_serve)

    assert run.main(cli_env + ["--channel", "keys"]) == 1
    assert seen["channel"] == "keys"


def test_unexpected_error_exit_1(cli_env, monkeypatch, caplog):
    async def fake_serve(config):
        raise RuntimeError("event loop exploded")

    monkeypatch.setattr(run, "serve", fake_serve)

    assert run.main(cli_env) == 1
    assert "event loop exploded" in caplog.text


def test_startup_logs_settings_without_tokens(cli_env, monkeypatch, caplog, bus):
    caplog.set_level("INFO", logger="keybot")
    monkeypatch.setattr(run, "build_bus", lambda config: bus)

    assert run.main(cli_env + ["--check"]) == 0
    assert "'allowed_keys': ['13', '14', '15']" in caplog.text
    assert "xoxb-test" not in caplog.text


class TestCommands:
    """--list-channels and --check against an in-memory bus."""

    @pytest.fixture(autouse=True)
    def use_fake_bus(self, monkeypatch, bus):
        monkeypatch.setattr(run, "build_bus", lambda config: bus)

    def test_list_channels(self, cli_env, bus, capsys):
        bus.channels = [{"id": "C1", "name": "general"}, {"id": "C2", "name": "keys"}]

        assert run.main(cli_env + ["--list-channels"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines == ["Accessible channels:", "- general (C1)", "- keys (C2)"]
        assert bus.identify_calls == 1

    def test_list_channels_auth_failure(self, cli_env, bus, capsys):
        bus.identify_errors.append(AuthenticationError("invalid_auth"))

        assert run.main(cli_env + ["--list-channels"]) == 1
        assert "Accessible channels" not in capsys.readouterr().out

    def test_check_ok(self, cli_env, caplog):
        caplog.set_level("INFO", logger="keybot")

        assert run.main(cli_env + ["--check"]) == 0
        assert "OK: channel general is C1" in caplog.text

    def test_check_missing_channel(self, cli_env, caplog):
        assert run.main(cli_env + ["--check", "--channel", "nope"]) == 1
        assert "channel nope not found" in caplog.text

    def test_check_network_failure(self, cli_env, bus):
        bus.identify_errors.append(ConnectionError("temporary DNS failure"))

        assert run.main(cli_env + ["--check"]) == 1
