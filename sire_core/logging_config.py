"""
Logging setup for Sire nodes.

Two console formats are available:
  - **human** – coloured, single-line, readable
  - **json**  – newline-delimited JSON for log aggregators

An optional log file always receives JSON.

Usage:
    from sire_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="data/sire.log")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

FORMATS = ("human", "json")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Short coloured lines for a terminal."""

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        if self.colour:
            start, end = self.COLOURS.get(record.levelname, ""), self.RESET
        else:
            start = end = ""
        line = f"{start}{ts} [{record.levelname:<7}]{end} {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the node process.

    Parameters
    ----------
    level : str
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL.  Unknown names
        fall back to INFO.
    fmt : str
        ``"human"`` or ``"json"``.
    log_file : str, optional
        Also append JSON records to this file.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unknown log format {fmt!r} (expected one of {FORMATS})")

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Drop handlers from a previous call so records are not duplicated
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(HumanFormatter(colour=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path))
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)

    # aiohttp's access log is one line per request; keep it out of INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
