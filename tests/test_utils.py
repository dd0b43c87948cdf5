import json
import logging
import sys

import pytest
from rich.logging import RichHandler

from buildorch.utils import StructuredFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    logger = logging.getLogger("buildorch")
    handlers, level = logger.handlers[:], logger.level
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


def test_setup_logging_pretty():
    logger = setup_logging("debug")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RichHandler)


def test_setup_logging_structured():
    logger = setup_logging("WARNING", "structured")
    assert logger.level == logging.WARNING
    assert isinstance(logger.handlers[0].formatter, StructuredFormatter)


def test_setup_logging_file(tmp_path):
    log_file = tmp_path / "logs" / "build.log"
    logger = setup_logging("INFO", "structured", log_file)
    logger.info("plan ready", extra={"package": "app", "event": "plan"})

    for handler in logger.handlers:
        handler.flush()
    record = json.loads(log_file.read_text().splitlines()[-1])
    assert record["message"] == "plan ready"
    assert record["package"] == "app"
    assert record["event"] == "plan"
    assert record["level"] == "INFO"


def test_setup_logging_replaces_handlers():
    setup_logging("INFO")
    logger = setup_logging("INFO")
    assert len(logger.handlers) == 1


def test_structured_formatter_exception():
    try:
        raise ValueError("bad")
    except ValueError:
        record = logging.LogRecord("buildorch", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

    data = json.loads(StructuredFormatter().format(record))
    assert data["message"] == "failed"
    assert "ValueError: bad" in data["exception"]
