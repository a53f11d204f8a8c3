"""Test suite for logging setup."""

import logging
import sys
from contextlib import contextmanager

from ragcontext.logger import configure_logging


@contextmanager
def preserved_root_logger():
    """Undo configure_logging so pytest's own capture handlers survive."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    httpx_level = logging.getLogger("httpx").level
    try:
        yield root
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        logging.getLogger("httpx").setLevel(httpx_level)


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_should_install_single_stdout_handler(self) -> None:
        with preserved_root_logger() as root:
            configure_logging("debug")
            configure_logging("debug")

            assert len(root.handlers) == 1
            assert root.handlers[0].stream is sys.stdout
            assert root.level == logging.DEBUG

    def test_should_quiet_http_loggers(self) -> None:
        with preserved_root_logger():
            configure_logging(logging.INFO)

            assert logging.getLogger("httpx").level == logging.WARNING
