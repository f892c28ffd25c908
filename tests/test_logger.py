import logging

from shared.logging import logger as logger_module
from shared.logging.logger import get_logger


def test_logger_is_cached_per_runtime_and_name():
    first = get_logger("tests.cached", runtime="tests")

    assert get_logger("tests.cached", runtime="tests") is first
    assert get_logger("tests.cached", runtime="other") is not first
    assert first.propagate is False


def test_runtime_shares_one_file_per_run(tmp_path, monkeypatch):
    monkeypatch.setenv("CLIPT_LOG_DIR", str(tmp_path))
    monkeypatch.setattr(logger_module, "_FILE_HANDLERS", {})

    a = get_logger("tests.file_a", runtime="filetest")
    b = get_logger("tests.file_b", runtime="filetest")

    files_a = [h for h in a.handlers if isinstance(h, logging.FileHandler)]
    files_b = [h for h in b.handlers if isinstance(h, logging.FileHandler)]
    assert files_a == files_b
    assert len(list(tmp_path.glob("filetest-*.log"))) == 1


def test_file_logging_can_be_disabled(monkeypatch):
    monkeypatch.setenv("CLIPT_LOG_TO_FILE", "0")
    monkeypatch.setenv("CLIPT_LOG_LEVEL", "warning")

    log = get_logger("tests.console_only", runtime="nofile")

    assert not any(isinstance(h, logging.FileHandler) for h in log.handlers)
    assert log.handlers[0].level == logging.WARNING
