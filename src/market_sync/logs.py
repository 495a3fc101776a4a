from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED = frozenset(
    vars(logging.LogRecord("x", logging.INFO, __file__, 0, "", None, None)).keys()
) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, plus extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _RESERVED or key.startswith("_"):
                continue
            entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, sort_keys=True)


def configure_logging(level: Optional[str] = None, json_lines: bool = False) -> logging.Logger:
    """Attach a single stream handler to the ``msync`` logger tree.

    Safe to call more than once; the previous handler is replaced.
    """

    logger = logging.getLogger("msync")
    lvl = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    logger.setLevel(lvl)
    for h in list(logger.handlers):
        if getattr(h, "_msync_handler", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler._msync_handler = True  # type: ignore[attr-defined]
    if json_lines:
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
