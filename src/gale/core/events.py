"""Turn states, callbacks and outcomes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from gale.core.content import FunctionCall, UsageMetadata

if TYPE_CHECKING:
    from gale.tools.base import ToolResult


class TurnState(StrEnum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    CONTINUING = "continuing"
    TERMINAL = "terminal"
    FAILED = "failed"


class TurnStatus(StrEnum):
    DONE = "done"
    ERROR = "error"
    KEYS_EXHAUSTED = "keys_exhausted"


class TurnErrorKind(StrEnum):
    NO_CREDENTIALS = "no_credentials"
    REQUEST_FAILED = "request_failed"
    PROTOCOL_VIOLATION = "protocol_violation"
    TRUNCATED_RESPONSE = "truncated_response"
    SAFETY_BLOCKED = "safety_blocked"
    MALFORMED_FUNCTION_CALL = "malformed_function_call"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TurnOutcome:
    """Terminal event of one user-initiated turn."""

    status: TurnStatus
    message: str = ""
    error_kind: TurnErrorKind | None = None
    finish_reason: str | None = None
    iterations: int = 0
    usage: UsageMetadata | None = None

    @property
    def ok(self) -> bool:
        return self.status == TurnStatus.DONE


@dataclass(frozen=True)
class TurnCallbacks:
    """Notification sinks; they never mutate engine state."""

    on_chunk: Callable[[str], Any] | None = None
    on_tool_call: Callable[[FunctionCall], Any] | None = None
    on_tool_result: Callable[[str, ToolResult], Any] | None = None

    def chunk(self, text: str) -> None:
        if self.on_chunk is not None:
            self.on_chunk(text)

    def tool_call(self, call: FunctionCall) -> None:
        if self.on_tool_call is not None:
            self.on_tool_call(call)

    def tool_result(self, name: str, result: ToolResult) -> None:
        if self.on_tool_result is not None:
            self.on_tool_result(name, result)
