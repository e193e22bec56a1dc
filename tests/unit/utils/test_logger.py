import logging
import pytest
from pkpublish.utils.logger import Logger


class TestLogger:
    """Test cases for the shared Logger"""

    @pytest.fixture
    def log(self):
        return Logger(log_level="INFO", logger_name="pkpublish-test")

    def test_single_handler(self, log):
        Logger(log_level="INFO", logger_name="pkpublish-test")

        assert len(log.logger.handlers) == 1
        assert log.logger.propagate is False

    def test_set_level_any_case(self, log):
        log.set_level("debug")

        assert log.logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, log):
        log.set_level("chatty")

        assert log.logger.level == logging.INFO

    def test_get_logger_is_shared(self):
        assert Logger.get_logger() is Logger.get_logger("DEBUG")

    def test_update_level(self):
        shared = Logger.get_logger()
        previous = shared.level

        Logger.update_level("WARNING")

        assert shared.level == logging.WARNING
        shared.setLevel(previous)
