"""Tests for the gateway logging setup."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from mini_discord.gateway.logging_config import (
    GATEWAY_LOGGER_NAME,
    get_gateway_logger,
    setup_gateway_logging,
)


def _file_handler(logger: logging.Logger) -> RotatingFileHandler:
    return next(h for h in logger.handlers if isinstance(h, RotatingFileHandler))


@pytest.fixture
def gateway_logger():
    logger = get_gateway_logger()
    yield logger
    setup_gateway_logging(logging.INFO)


def test_logger_is_set_up_on_import(gateway_logger):
    assert gateway_logger.name == GATEWAY_LOGGER_NAME
    assert len(gateway_logger.handlers) == 2
    assert gateway_logger.propagate is False


def test_setup_again_changes_handler_levels(gateway_logger):
    setup_gateway_logging(logging.DEBUG)

    assert gateway_logger.level == logging.DEBUG
    assert _file_handler(gateway_logger).level == logging.DEBUG
    assert len(gateway_logger.handlers) == 2

    setup_gateway_logging(logging.WARNING)
    assert _file_handler(gateway_logger).level == logging.WARNING


def test_console_only_shows_warnings(gateway_logger):
    setup_gateway_logging(logging.DEBUG)
    console = [h for h in gateway_logger.handlers if not isinstance(h, RotatingFileHandler)]
    assert [h.level for h in console] == [logging.WARNING]


def test_debug_records_reach_log_file_after_reconfigure(gateway_logger):
    setup_gateway_logging(logging.DEBUG)
    gateway_logger.debug("DiscordGateway: [SEND] op=1 marker=reconfigured")

    handler = _file_handler(gateway_logger)
    handler.flush()
    assert "marker=reconfigured" in Path(handler.baseFilename).read_text(encoding="utf-8")
