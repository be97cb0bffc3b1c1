import logging

import pytest

from doh_proxy.shared.logging import NOISY_LOGGERS, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_installs_single_handler():
    setup_logging("DEBUG")
    setup_logging("INFO")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO


def test_noisy_loggers_follow_debug_only():
    setup_logging("WARNING")
    assert all(logging.getLogger(name).level == logging.WARNING for name in NOISY_LOGGERS)

    setup_logging(logging.DEBUG)
    assert all(logging.getLogger(name).level == logging.DEBUG for name in NOISY_LOGGERS)


def test_unknown_level_falls_back_to_info():
    setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO


def test_get_logger():
    assert get_logger("doh_proxy.test") is logging.getLogger("doh_proxy.test")
