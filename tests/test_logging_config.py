"""Tests for the shared logging configuration."""
import contextlib
import logging

from src.logging_config import LOG_FILE, configure_logging


@contextlib.contextmanager
def bare_root_logger():
    """Root logger with no handlers, restored afterwards."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    root.handlers = []
    try:
        yield root
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)


class TestConfigureLogging:

    def test_adds_console_and_file_handlers(self, tmp_path):
        log_dir = tmp_path / "logs"
        with bare_root_logger() as root:
            configure_logging("debug", log_dir=str(log_dir))

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
        assert (log_dir / LOG_FILE).exists()

    def test_idempotent(self, tmp_path):
        with bare_root_logger() as root:
            configure_logging(logging.WARNING, log_dir=str(tmp_path))
            configure_logging(logging.DEBUG, log_dir=str(tmp_path))

            assert len(root.handlers) == 2
            assert root.level == logging.WARNING

    def test_unknown_level_name_defaults_to_info(self, tmp_path):
        with bare_root_logger() as root:
            configure_logging("LOUD", log_dir=str(tmp_path))
            assert root.level == logging.INFO

    def test_existing_handlers_left_alone(self, tmp_path):
        with bare_root_logger() as root:
            existing = logging.NullHandler()
            root.addHandler(existing)
            configure_logging(log_dir=str(tmp_path / "unused"))

            assert root.handlers == [existing]
        assert not (tmp_path / "unused").exists()
