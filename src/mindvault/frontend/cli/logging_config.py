"""Lightweight logging setup for the TUI."""

import logging
from pathlib import Path
from typing import Optional


def configure_logging(level: int = logging.INFO, log_file: Optional[str | Path] = None) -> None:
    # Configure root logger once. The TUI owns the terminal, so records go to
    # a file when one is given; stderr otherwise.
    handlers = None
    if log_file is not None:
        handlers = [logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")]
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
