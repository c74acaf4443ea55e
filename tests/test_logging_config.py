import json
import logging
import sys

import pytest
from flask import Flask

from wicket_sync.utils.logging_config import JSONFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("wicket_sync.sync", logging.INFO, __file__, 10, "Synced %s pages", (3,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def bare_app():
    flask_app = Flask("logging-test")
    yield flask_app
    for logger in (flask_app.logger, logging.getLogger("wicket_sync")):
        for handler in list(logger.handlers):
            if getattr(handler, "_wicket_sync_handler", False):
                logger.removeHandler(handler)
                handler.close()


def test_json_formatter_includes_extra_fields():
    payload = json.loads(JSONFormatter().format(_record(person_uuid="person-1", private=object())))

    assert payload["message"] == "Synced 3 pages"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "wicket_sync.sync"
    assert payload["person_uuid"] == "person-1"
    assert isinstance(payload["private"], str)


def test_json_formatter_renders_exceptions():
    try:
        raise ValueError("bad page")
    except ValueError:
        record = logging.LogRecord("wicket_sync", logging.ERROR, __file__, 1, "failed", (), None)
        record.exc_info = sys.exc_info()

    payload = json.loads(JSONFormatter().format(record))

    assert "ValueError: bad page" in payload["exception"]


def test_setup_logging_replaces_its_own_handlers(bare_app):
    bare_app.config.update(LOG_LEVEL="debug", LOG_FORMAT="json")

    setup_logging(bare_app)
    setup_logging(bare_app)

    tagged = [h for h in bare_app.logger.handlers if getattr(h, "_wicket_sync_handler", False)]
    assert len(tagged) == 1
    assert isinstance(tagged[0].formatter, JSONFormatter)
    assert bare_app.logger.level == logging.DEBUG
    assert logging.getLogger("wicket_sync").level == logging.DEBUG


def test_setup_logging_writes_rotating_file(bare_app, tmp_path):
    bare_app.config.update(
        LOG_FORMAT="text",
        ENABLE_CONSOLE_LOGGING=False,
        ENABLE_FILE_LOGGING=True,
        LOG_DIR=str(tmp_path),
    )

    setup_logging(bare_app)
    logging.getLogger("wicket_sync.tests").info("file logging works")
    for handler in logging.getLogger("wicket_sync").handlers:
        handler.flush()

    contents = (tmp_path / "wicket_sync.log").read_text()
    assert "file logging works" in contents
