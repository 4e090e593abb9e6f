from __future__ import annotations

import json
import logging

from quantledger.core.config import LoggingConfig
from quantledger.core.log import JsonFormatter, configure_logging


def test_configure_logging_is_idempotent() -> None:
    root = configure_logging(LoggingConfig(level="debug"))
    configure_logging(LoggingConfig(level="debug"))
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1


def test_json_formatter_carries_extra_fields() -> None:
    record = logging.makeLogRecord({"name": "quantledger.test", "levelname": "INFO", "msg": "buy_clamped", "amount": "1.5"})
    payload = json.loads(JsonFormatter().format(record))
    assert payload["event"] == "buy_clamped"
    assert payload["amount"] == "1.5"
    assert payload["logger"] == "quantledger.test"
