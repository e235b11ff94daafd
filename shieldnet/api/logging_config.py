"""
Logging setup shared by the relayer service, the CLI and the wallet core.

Library modules only attach a NullHandler; handlers are installed by
`setup_logging()` from an entry point.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER = "shieldnet"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # text | json

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"))


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """
    Configure the `shieldnet` logger hierarchy once.

    Args:
        level: Log level name (default: LOG_LEVEL env, INFO)
        fmt: "text" or "json" (default: LOG_FORMAT env)

    Returns:
        The root `shieldnet` logger
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return root

    handler = logging.StreamHandler(sys.stderr)
    if (fmt or LOG_FORMAT) == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))

    root.addHandler(handler)
    root.setLevel((level or LOG_LEVEL).upper())
    root.propagate = False
    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a child of the `shieldnet` logger, e.g. get_logger("relayer")."""
    if name.startswith(ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
