"""Conversation history store."""

from __future__ import annotations

from collections.abc import Iterator

from gale.core.content import (
    Content,
    FunctionCall,
    FunctionCallPart,
    FunctionResponse,
    FunctionResponsePart,
    TextPart,
)
from gale.errors import HistoryError


class ConversationHistory:
    """Ordered, append-only list of turns fed into every request.

    The only in-place mutation is text coalescing: a streamed model text delta
    is appended as a new part of the most recent model entry when that entry
    holds text only.
    """

    def __init__(self) -> None:
        self._entries: list[Content] = []
        self._call_ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Content]:
        return iter(list(self._entries))

    @property
    def entries(self) -> tuple[Content, ...]:
        return tuple(self._entries)

    def last(self) -> Content | None:
        return self._entries[-1] if self._entries else None

    def append_user_text(self, text: str) -> None:
        self._entries.append(Content.text("user", text))

    def append_model_text(self, text: str) -> None:
        last = self.last()
        if last is not None and last.role == "model" and last.is_text_only:
            self._entries[-1] = Content(role="model", parts=(*last.parts, TextPart(text=text)))
            return
        self._entries.append(Content.text("model", text))

    def append_function_call(self, call: FunctionCall) -> None:
        if not call.id:
            raise HistoryError(f"function call {call.name!r} has no correlation id")
        self._entries.append(Content(role="model", parts=(FunctionCallPart(function_call=call),)))
        self._call_ids.add(call.id)

    def append_function_response(self, response: FunctionResponse) -> None:
        if response.id not in self._call_ids:
            raise HistoryError(f"function response {response.name!r} has unknown id {response.id!r}")
        self._entries.append(Content(role="user", parts=(FunctionResponsePart(function_response=response),)))

    def reset(self) -> None:
        self._entries.clear()
        self._call_ids.clear()
