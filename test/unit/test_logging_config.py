"""
Unit tests for backend/quizgen/core/logging_config.py
Tests: handlers installed once, rotating log file created, noisy loggers quietened
"""

import sys
import os
import logging
import logging.handlers
import pytest

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

import quizgen.core.logging_config as _lc


@pytest.fixture
def clean_root(monkeypatch):
    """Give configure_logging an unconfigured root logger and restore it after."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers = []
    monkeypatch.setattr(_lc, "_configured", False)
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def test_file_and_stream_handlers(clean_root, tmp_path):
    _lc.configure_logging(level="DEBUG", log_dir=str(tmp_path))
    kinds = {type(h) for h in clean_root.handlers}
    assert logging.StreamHandler in kinds
    assert logging.handlers.RotatingFileHandler in kinds
    assert clean_root.level == logging.DEBUG
    assert (tmp_path / "quizgen.log").exists()


def test_stream_only(clean_root, tmp_path):
    _lc.configure_logging(log_dir=str(tmp_path), to_file=False)
    assert all(not isinstance(h, logging.handlers.RotatingFileHandler) for h in clean_root.handlers)
    assert not (tmp_path / "quizgen.log").exists()


def test_second_call_is_noop(clean_root, tmp_path):
    _lc.configure_logging(log_dir=str(tmp_path), to_file=False)
    count = len(clean_root.handlers)
    _lc.configure_logging(log_dir=str(tmp_path))
    assert len(clean_root.handlers) == count


def test_noisy_loggers_quietened(clean_root, tmp_path):
    _lc.configure_logging(log_dir=str(tmp_path), to_file=False)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("openai").level == logging.WARNING
