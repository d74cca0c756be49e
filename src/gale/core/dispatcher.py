"""Function-call collection and sequential dispatch."""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from gale.core.content import FunctionCall, FunctionResponse, UsageMetadata
from gale.core.decoder import ResponseUpdate
from gale.core.events import TurnCallbacks
from gale.core.history import ConversationHistory
from gale.errors import InvalidToolParametersError
from gale.tools.base import CancellationToken, ToolErrorType, ToolResult
from gale.tools.registry import ToolRegistry

GENERIC_SUCCESS = "Tool execution succeeded."


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


def _render_args(args: dict[str, Any]) -> str:
    params: list[str] = []
    for key, value in args.items():
        try:
            rendered = json.dumps(value, ensure_ascii=False)
        except TypeError:
            rendered = repr(value)
        params.append(f"{key}={_shorten_text(rendered)}")
    return ", ".join(params)


def to_function_response(call: FunctionCall, result: ToolResult) -> FunctionResponse:
    """Format one tool result the way the model expects it."""
    if result.error is not None:
        payload: dict[str, Any] = {"error": result.error.message}
    elif isinstance(result.llm_content, str):
        payload = {"output": result.llm_content}
    else:
        payload = {"output": GENERIC_SUCCESS}
    return FunctionResponse(name=call.name, response=payload, id=call.id)


class FunctionCallDispatcher:
    """Executes the calls of one response strictly in emission order."""

    def __init__(self, registry: ToolRegistry, history: ConversationHistory) -> None:
        self._registry = registry
        self._history = history

    async def dispatch(
        self,
        calls: Sequence[FunctionCall],
        *,
        callbacks: TurnCallbacks | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[ToolResult]:
        sinks = callbacks or TurnCallbacks()
        token = cancel or CancellationToken()
        results: list[ToolResult] = []
        for call in calls:
            self._history.append_function_call(call)
            sinks.tool_call(call)
            result = await self.execute(call, token)
            self._history.append_function_response(to_function_response(call, result))
            sinks.tool_result(call.name, result)
            results.append(result)
        return results

    async def execute(self, call: FunctionCall, cancel: CancellationToken) -> ToolResult:
        logger.info("tool.call.start name={} id={} {{ {} }}", call.name, call.id, _render_args(call.args))
        start = time.monotonic()
        try:
            return await self._execute(call, cancel)
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", call.name, duration * 1000)

    async def _execute(self, call: FunctionCall, cancel: CancellationToken) -> ToolResult:
        tool = self._registry.get(call.name)
        if tool is None:
            return ToolResult.failure(
                f"Tool not found: {call.name}", ToolErrorType.EXECUTION_ERROR, display="Error: Tool not found"
            )
        try:
            params = tool.validate(call.args)
        except InvalidToolParametersError as exc:
            return ToolResult.failure(str(exc), ToolErrorType.INVALID_PARAMETERS, display="Error: Invalid parameters")
        try:
            return await tool.run(params, cancel)
        except Exception as exc:
            logger.exception("tool.call.error name={}", call.name)
            return ToolResult.failure(f"Error executing tool: {exc!s}", ToolErrorType.EXECUTION_ERROR)


@dataclass
class CollectedResponse:
    """Running summary of one decoded response body."""

    finish_reason: str | None = None
    dispatched_calls: int = 0
    usage: UsageMetadata | None = None


class ResponseCollector:
    """Splits thought from visible text and hands collected calls to the dispatcher."""

    def __init__(
        self,
        history: ConversationHistory,
        dispatcher: FunctionCallDispatcher,
        callbacks: TurnCallbacks,
        cancel: CancellationToken,
    ) -> None:
        self._history = history
        self._dispatcher = dispatcher
        self._callbacks = callbacks
        self._cancel = cancel
        self.summary = CollectedResponse()

    async def consume(self, update: ResponseUpdate) -> None:
        for thought in update.thoughts:
            logger.debug("model.thought {}", thought)
        for text in update.texts:
            self._callbacks.chunk(text)
            self._history.append_model_text(text)
        if update.function_calls:
            await self._dispatcher.dispatch(update.function_calls, callbacks=self._callbacks, cancel=self._cancel)
            self.summary.dispatched_calls += len(update.function_calls)
        if update.finish_reason is not None:
            self.summary.finish_reason = update.finish_reason
        if update.usage is not None:
            self.summary.usage = update.usage
