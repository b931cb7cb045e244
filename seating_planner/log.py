from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = logging.INFO, log_file: Optional[Path] = None) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(FORMAT, DATEFMT)

    # Re-running setup (tests, repeated CLI calls in one process) must not stack handlers.
    for h in list(root.handlers):
        if getattr(h, "_seating_planner", False):
            root.removeHandler(h)
            h.close()

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    ch._seating_planner = True  # type: ignore[attr-defined]
    root.addHandler(ch)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        fh._seating_planner = True  # type: ignore[attr-defined]
        root.addHandler(fh)
