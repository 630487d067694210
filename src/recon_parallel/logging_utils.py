"""Logging utilities.

We use Python's standard logging module with:
- console handler (INFO)
- file handler (DEBUG) with timestamps

Library modules log through ``logging.getLogger(__name__)``; configuring the
package logger here routes them to the same handlers.
"""

from __future__ import annotations

import logging
from pathlib import Path

PACKAGE_LOGGER = "recon_parallel"

_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(*, log_dir: Path, run_id: str, name: str = "recon_parallel") -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{name}_{run_id}.log"

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)

    fh = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)

    names = [name] if name == PACKAGE_LOGGER else [name, PACKAGE_LOGGER]
    for logger_name in names:
        lg = logging.getLogger(logger_name)
        lg.setLevel(logging.DEBUG)
        lg.propagate = False  # avoid duplicate logs if root logger configured

        # Idempotent: clear existing handlers if reconfigured in same process.
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()
        lg.addHandler(ch)
        lg.addHandler(fh)

    logger = logging.getLogger(name)
    logger.debug("Logging configured. log_path=%s", log_path)
    return logger
