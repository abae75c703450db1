"""Tests for logger setup helpers."""
import logging

from vault_engine.utils.logging_config import (
    get_engine_logger,
    get_risk_logger,
    get_strategy_logger,
    setup_logger,
)


class TestLoggingConfig:

    def test_setup_logger_console_only(self):
        logger = setup_logger('TEST.CONSOLE_ONLY', level=logging.DEBUG, log_to_file=False)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_setup_logger_no_duplicate_handlers(self):
        first = setup_logger('TEST.NO_DUPES', log_to_file=False)
        second = setup_logger('TEST.NO_DUPES', log_to_file=False)

        assert first is second
        assert len(second.handlers) == 1

    def test_component_logger_names(self):
        assert get_engine_logger().name == 'ENGINE'
        assert get_risk_logger().name == 'RISK.MANAGER'
        assert get_strategy_logger('hedge').name == 'STRATEGY.HEDGE'
