"""Tests for DiscordConfig and load_config."""

import pytest
from pydantic import ValidationError

from mini_discord.config import DiscordConfig, load_config


def test_defaults():
    config = DiscordConfig()
    assert config.api_version == 10
    assert config.gateway_url == "wss://gateway.discord.gg"
    assert config.gateway_reconnect_delay == 5.0
    assert config.gateway_connect_timeout == 5.0
    assert config.gateway_throw_error is True
    assert config.heartbeat_ack_tracking is False
    assert config.auto_reconnect is True


def test_negative_reconnect_delay_disables_auto_reconnect():
    assert DiscordConfig(gateway_reconnect_delay=-1).auto_reconnect is False


@pytest.mark.parametrize(
    "field, value",
    [
        ("api_version", 0),
        ("gateway_url", "https://gateway.discord.gg"),
        ("gateway_intents", -1),
        ("request_timeout", 0),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        DiscordConfig(**{field: value})


def test_gateway_url_trailing_slash_stripped():
    assert DiscordConfig(gateway_url="wss://gateway.discord.gg/").gateway_url == "wss://gateway.discord.gg"


def test_token_prefers_config_over_environment(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "env-token")
    assert DiscordConfig(token="config-token").resolve_token() == "config-token"
    assert DiscordConfig().resolve_token() == "env-token"


def test_load_config_reads_discord_section(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "discord:\n"
        "  token: yaml-token\n"
        "  gateway_intents: 513\n"
        "  gateway_reconnect_delay: 1.5\n"
        "other:\n"
        "  ignored: true\n",
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.token == "yaml-token"
    assert config.gateway_intents == 513
    assert config.gateway_reconnect_delay == 1.5


def test_load_config_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config == DiscordConfig()


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(str(path)).api_version == 10
