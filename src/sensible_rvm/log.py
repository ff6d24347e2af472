"""Logging setup.

The package logs through loguru and is disabled on import; call
``enable_logging`` to see fit progress.
"""

from __future__ import annotations

import sys
from typing import Any

from loguru import logger

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}"


def enable_logging(level: str = "INFO", sink: Any = None) -> int:
    """Enable sensible_rvm log messages on ``sink`` (stderr by default).

    Returns the loguru handler id, which can be passed to ``logger.remove``.
    """
    logger.enable("sensible_rvm")
    return logger.add(
        sys.stderr if sink is None else sink,
        level=level,
        format=_FORMAT,
        filter="sensible_rvm",
        backtrace=True,
        diagnose=False,
    )


def disable_logging() -> None:
    logger.disable("sensible_rvm")
