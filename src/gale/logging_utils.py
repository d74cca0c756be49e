"""Process logging for gale.

Every record carries the id of the turn that emitted it in ``extra[turn]``
(``-`` outside a turn), so interleaved tool and request events can be
grouped per turn.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

from gale.core.turn import current_turn

LogProfile = Literal["default", "chat"]

LOG_LEVEL_ENV = "GALE_LOG_LEVEL"
_LINE_FORMAT = "{time:HH:mm:ss.SSS} {level:<7} [{extra[turn]}] {name}:{line} {message}"
_CONFIGURED_PROFILE: LogProfile | None = None


def _tag_turn(record: loguru.Record) -> None:
    record["extra"]["turn"] = current_turn()


def _sink_for(profile: LogProfile) -> tuple[Any, str]:
    if profile == "chat":
        # share the prompt's console so records print above the input line
        handler = RichHandler(console=get_console(), show_time=False, show_path=False, markup=False)
        return handler, "[{extra[turn]}] {message}"
    return sys.stderr, _LINE_FORMAT


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Install the sink for ``profile``; repeated calls for the same profile are no-ops.

    ``level`` falls back to ``GALE_LOG_LEVEL`` and then ``INFO``.
    """
    global _CONFIGURED_PROFILE
    if _CONFIGURED_PROFILE == profile:
        return

    sink, fmt = _sink_for(profile)
    logger.configure(handlers=[], patcher=_tag_turn)
    logger.add(sink, level=(level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper(), format=fmt, diagnose=False)
    _CONFIGURED_PROFILE = profile
