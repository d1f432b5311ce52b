import json
import logging

import pytest

import miniapp_assets.core.logging as app_logging
from miniapp_assets.core.config import Settings
from miniapp_assets.core.logging import EXTRA_FIELDS, ConsoleFormatter, JsonFormatter, configure_logging


def _record(**extras) -> logging.LogRecord:
    record = logging.LogRecord("miniapp_assets.x", logging.WARNING, __file__, 1, "Attempt %d failed", (2,), None)
    for key, value in extras.items():
        setattr(record, key, value)
    return record


def test_extra_fields_do_not_shadow_log_record_attributes():
    reserved = set(vars(logging.LogRecord("n", logging.INFO, "p", 1, "m", None, None))) | {"message", "asctime"}
    assert not reserved & set(EXTRA_FIELDS)


def test_every_extra_field_is_accepted_by_the_logger(caplog):
    logger = logging.getLogger("miniapp_assets.test")
    with caplog.at_level(logging.INFO):
        logger.info("all fields", extra={name: 1 for name in EXTRA_FIELDS})
    assert caplog.records[-1].artifact_name == 1


def test_json_formatter_includes_known_extra_fields():
    payload = json.loads(JsonFormatter().format(_record(slot="icon", delay_seconds=30, unrelated="dropped")))

    assert payload["message"] == "Attempt 2 failed"
    assert payload["level"] == "WARNING"
    assert payload["slot"] == "icon"
    assert payload["delay_seconds"] == 30
    assert "unrelated" not in payload


def test_console_formatter_appends_extras():
    line = ConsoleFormatter().format(_record(slot="embed", artifact_name="screenshot-embed-1.png"))
    assert "WARNING" in line
    assert line.endswith("Attempt 2 failed  slot=embed artifact_name=screenshot-embed-1.png")


@pytest.mark.parametrize("fmt,formatter", [("json", JsonFormatter), ("text", ConsoleFormatter)])
def test_configure_logging_console_format(monkeypatch, restore_root_logger, fmt, formatter):
    monkeypatch.setattr(app_logging, "settings", Settings(_env_file=None, log_format=fmt, log_level="debug"))
    configure_logging()

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, formatter)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_configure_logging_file_is_json(monkeypatch, restore_root_logger, tmp_path):
    log_file = tmp_path / "run.log"
    monkeypatch.setattr(app_logging, "settings", Settings(_env_file=None, log_file=str(log_file)))
    configure_logging()

    handlers = logging.getLogger().handlers
    assert len(handlers) == 2
    assert isinstance(handlers[1].formatter, JsonFormatter)
    for handler in handlers:
        handler.close()


def test_log_format_validated():
    assert Settings(_env_file=None, log_format=" JSON ").log_format == "json"
    with pytest.raises(ValueError):
        Settings(_env_file=None, log_format="xml")
