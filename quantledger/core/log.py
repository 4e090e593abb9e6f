"""quantledger.core.log

Logging setup.

Modules log snake_case event names with context in `extra=`. This module only
decides where those records go and what they look like.
"""

from __future__ import annotations

import json
import logging

from quantledger.core.config import LoggingConfig

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in _RESERVED:
                payload[k] = v
        return json.dumps(payload, default=str, sort_keys=True)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Attach a single stream handler to the `quantledger` logger."""

    cfg = cfg or LoggingConfig()
    root = logging.getLogger("quantledger")
    root.setLevel(cfg.level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if cfg.json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
    return root
