"""
GeoCert Utilities
==================

Logging setup, run identifiers, the wall clock used by signers and
resolvers, and JSON output for the CLI.

Logs always go to stderr: the CLI prints signed responses on stdout
and they must stay machine-readable.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Optional

# Chatty at INFO; only their warnings reach GeoCert's output.
QUIET_LOGGERS = ("httpx", "httpcore", "web3", "urllib3")


def generate_run_id() -> str:
    """
    Identifier stamped on every log line of one CLI invocation.

    Example: geocert-20250209-143022-a1b2c3d4
    """
    return f"geocert-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


def unix_now() -> int:
    return int(time.time())


# ── Logging ────────────────────────────────────────────────────────

class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, tagged with the run ID when given."""

    def __init__(self, run_id: Optional[str] = None):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.run_id:
            entry["run_id"] = self.run_id
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    format_style: str = "text",
    run_id: str | None = None
) -> logging.Logger:
    """
    Configure the ``geocert`` logger tree.

    Args:
        level: Log level for ``geocert.*`` loggers.
        format_style: "json" for one object per line, "text" otherwise.
        run_id: Included in every record when given.

    Returns:
        The ``geocert`` root logger.
    """
    logger = logging.getLogger("geocert")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if format_style == "json":
        handler.setFormatter(JsonLogFormatter(run_id))
    else:
        prefix = f"{run_id} | " if run_id else ""
        handler.setFormatter(logging.Formatter(
            f"%(asctime)s %(levelname)-7s {prefix}%(name)s: %(message)s", datefmt="%H:%M:%S"
        ))
    logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


# ── Output ─────────────────────────────────────────────────────────

def save_json(data: Any, path: str | Path, indent: int = 2) -> Path:
    """Write ``data`` as UTF-8 JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=indent, ensure_ascii=False) + "\n", encoding="utf-8")
    return path
