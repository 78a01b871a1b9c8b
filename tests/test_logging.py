"""
Tests for logging setup and the --debug / --trace verbosity flags.

setup_logging configures the root logger through logging.basicConfig, which
only acts when the root logger has no handlers. Each test therefore clears the
root handlers inside the test body and restores them afterwards.
"""

import logging
import os
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler

from email_counter import LOGGER, TRACE, main, setup_logging


@contextmanager
def isolated_root_logging():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_root_level = root.level
    saved_app_level = LOGGER.level
    root.handlers.clear()
    try:
        yield root
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_root_level)
        LOGGER.setLevel(saved_app_level)


class TestSetupLogging:
    """Test handler and level configuration."""

    def test_debug_with_rotating_log_file(self, tmp_path):
        log_path = tmp_path / "logs" / "x.log"

        with isolated_root_logging() as root:
            setup_logging(log_path, debug=True)

            assert LOGGER.level == logging.DEBUG
            file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
            assert len(file_handlers) == 1
            assert file_handlers[0].baseFilename == os.path.abspath(log_path)
            assert file_handlers[0].maxBytes == 1_000_000
            assert file_handlers[0].backupCount == 3

        assert "DEBUG - Logging initialised. Level=DEBUG" in log_path.read_text(encoding="utf-8")

    def test_default_is_info_without_file(self):
        with isolated_root_logging() as root:
            setup_logging()

            assert LOGGER.level == logging.INFO
            assert not any(isinstance(h, RotatingFileHandler) for h in root.handlers)
            assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)

    def test_trace_takes_precedence(self):
        with isolated_root_logging():
            setup_logging(debug=True, trace=True)

            assert LOGGER.level == TRACE
            assert logging.getLevelName(TRACE) == "TRACE"


class TestVerbosityFlags:
    """Test --debug and --trace through main()."""

    def write_input(self, tmp_path):
        path = tmp_path / "input.txt"
        path.write_text("nothing here\nA@B.COM x@y.org\n", encoding="utf-8")
        return path

    def test_trace_emits_per_line_records(self, tmp_path):
        path = self.write_input(tmp_path)
        log_path = tmp_path / "run.log"

        with isolated_root_logging():
            exit_code = main(
                ["-f", str(path), "--csv", str(tmp_path / "out"), "--trace", "--log-file", str(log_path)]
            )

        assert exit_code == 0
        log_text = log_path.read_text(encoding="utf-8")
        assert f"TRACE - {path}:2: 2 match(es)" in log_text
        assert f"{path}:1:" not in log_text
        assert "DEBUG - Found new email address 'a@b.com'!" in log_text

    def test_debug_omits_trace_records(self, tmp_path):
        path = self.write_input(tmp_path)
        log_path = tmp_path / "run.log"

        with isolated_root_logging():
            assert main(["-f", str(path), "--csv", str(tmp_path / "out"), "--debug", "--log-file", str(log_path)]) == 0

        log_text = log_path.read_text(encoding="utf-8")
        assert "Found new email address 'x@y.org'!" in log_text
        assert "TRACE" not in log_text

    def test_default_level_hides_debug(self, tmp_path):
        path = self.write_input(tmp_path)
        log_path = tmp_path / "run.log"

        with isolated_root_logging():
            assert main(["-f", str(path), "--csv", str(tmp_path / "out"), "--log-file", str(log_path)]) == 0

        log_text = log_path.read_text(encoding="utf-8")
        assert f"INFO - Processing '{path}'" in log_text
        assert "Found new email address" not in log_text
        assert "CRITICAL - Finished. Found 2 unique emails in 1 file" in log_text
