"""Turn controller: request, decode, dispatch, continue or stop."""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Any, Protocol

import httpx
from loguru import logger

from gale.config import MAX_TURNS_CEILING
from gale.core.decoder import ResponseDecoder
from gale.core.dispatcher import FunctionCallDispatcher, ResponseCollector
from gale.core.events import TurnCallbacks, TurnErrorKind, TurnOutcome, TurnState, TurnStatus
from gale.core.history import ConversationHistory
from gale.core.prompt import build_system_instruction
from gale.core.request import build_request
from gale.credentials import CredentialManager
from gale.errors import (
    KeysExhaustedError,
    ModelCallError,
    NoCredentialsConfiguredError,
    ProtocolViolationError,
)
from gale.tools.base import CancellationToken
from gale.tools.registry import ToolRegistry

TOOL_CONTINUATION = "__gale_tool_continuation__"

_turn_context: ContextVar[str] = ContextVar("turn")

FINISH_STOP = "STOP"
TERMINAL_ERRORS: dict[str, tuple[TurnErrorKind, str]] = {
    "MAX_TOKENS": (TurnErrorKind.TRUNCATED_RESPONSE, "Response truncated due to token limits."),
    "SAFETY": (TurnErrorKind.SAFETY_BLOCKED, "Response stopped due to safety reasons."),
    "MALFORMED_FUNCTION_CALL": (
        TurnErrorKind.MALFORMED_FUNCTION_CALL,
        "Model produced a malformed function call.",
    ),
}


def current_turn() -> str:
    """Short id of the turn running in this context, ``-`` outside one."""
    return _turn_context.get("-")


class StreamingModelClient(Protocol):
    async def stream_generate_content(self, api_key: str, request: dict[str, Any]) -> str: ...


class TurnController:
    """Drives one conversation against the model.

    A controller owns its history and is confined to one task at a time; the
    credential manager may be shared across controllers.
    """

    def __init__(
        self,
        *,
        client: StreamingModelClient,
        credentials: CredentialManager,
        registry: ToolRegistry,
        history: ConversationHistory | None = None,
        max_turns: int = MAX_TURNS_CEILING,
        generation_config: dict[str, Any] | None = None,
        memory: str = "",
        decoder: ResponseDecoder | None = None,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._registry = registry
        self._history = history if history is not None else ConversationHistory()
        self._max_turns = min(max(max_turns, 1), MAX_TURNS_CEILING)
        self._generation_config = generation_config
        self.memory = memory
        self._decoder = decoder or ResponseDecoder()
        self._dispatcher = FunctionCallDispatcher(registry, self._history)
        self.state = TurnState.IDLE

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def reset(self) -> None:
        self._history.reset()
        self.state = TurnState.IDLE

    def system_instruction(self) -> str:
        return build_system_instruction(self._registry.names(), self.memory)

    async def send_message(
        self,
        message: str,
        *,
        callbacks: TurnCallbacks | None = None,
        cancel: CancellationToken | None = None,
    ) -> TurnOutcome:
        """Run one user turn until the model stops, fails or hits ``max_turns``."""
        context = _turn_context.set(uuid.uuid4().hex[:8])
        try:
            return await self._run_turn(message, callbacks, cancel)
        finally:
            _turn_context.reset(context)

    async def _run_turn(
        self, message: str, callbacks: TurnCallbacks | None, cancel: CancellationToken | None
    ) -> TurnOutcome:
        sinks = callbacks or TurnCallbacks()
        token = cancel or CancellationToken()
        if message != TOOL_CONTINUATION:
            self._history.append_user_text(message)

        usage = None
        for iteration in range(1, self._max_turns + 1):
            if token.cancelled:
                return self._fail(TurnErrorKind.CANCELLED, "Turn cancelled.", iteration - 1, usage=usage)

            self.state = TurnState.AWAITING_RESPONSE
            logger.info("turn.step step={} model={}", iteration, self._credentials.model)
            request = build_request(
                self._history,
                self._registry.declarations(),
                self.system_instruction(),
                self._generation_config,
            )
            try:
                body = await self._credentials.call_with_retry(
                    lambda key: self._client.stream_generate_content(key, request)
                )
            except KeysExhaustedError as exc:
                self.state = TurnState.FAILED
                logger.warning("turn.keys_exhausted step={} error={}", iteration, exc.last_error)
                return TurnOutcome(
                    status=TurnStatus.KEYS_EXHAUSTED, message=str(exc), iterations=iteration, usage=usage
                )
            except NoCredentialsConfiguredError as exc:
                return self._fail(TurnErrorKind.NO_CREDENTIALS, str(exc), iteration, usage=usage)
            except (ModelCallError, httpx.HTTPError) as exc:
                logger.error("turn.request.error step={} error={}", iteration, exc)
                return self._fail(TurnErrorKind.REQUEST_FAILED, str(exc) or type(exc).__name__, iteration, usage=usage)

            collector = ResponseCollector(self._history, self._dispatcher, sinks, token)
            try:
                for update in self._decoder.decode(body):
                    await collector.consume(update)
            except ProtocolViolationError as exc:
                return self._fail(TurnErrorKind.PROTOCOL_VIOLATION, str(exc), iteration, usage=usage)

            summary = collector.summary
            usage = summary.usage or usage
            if summary.dispatched_calls:
                self.state = TurnState.CONTINUING
                logger.info("turn.continue step={} calls={}", iteration, summary.dispatched_calls)
                continue

            if summary.finish_reason is None:
                return self._fail(
                    TurnErrorKind.PROTOCOL_VIOLATION,
                    "Response had neither a finish reason nor function calls.",
                    iteration,
                    usage=usage,
                )
            return self._finish(summary.finish_reason, iteration, usage)

        logger.warning("turn.max_turns max_turns={}", self._max_turns)
        return self._fail(
            TurnErrorKind.MAX_TURNS_EXCEEDED,
            f"Maximum turns ({self._max_turns}) reached.",
            self._max_turns,
            usage=usage,
        )

    def _finish(self, finish_reason: str, iteration: int, usage: Any) -> TurnOutcome:
        terminal_error = TERMINAL_ERRORS.get(finish_reason)
        if terminal_error is not None:
            kind, message = terminal_error
            return self._fail(kind, message, iteration, finish_reason=finish_reason, usage=usage)
        if finish_reason != FINISH_STOP:
            # Unknown terminal states count as completion.
            logger.warning("turn.finish.unrecognized reason={}", finish_reason)
        self.state = TurnState.TERMINAL
        return TurnOutcome(
            status=TurnStatus.DONE, finish_reason=finish_reason, iterations=iteration, usage=usage
        )

    def _fail(
        self,
        kind: TurnErrorKind,
        message: str,
        iteration: int,
        *,
        finish_reason: str | None = None,
        usage: Any = None,
    ) -> TurnOutcome:
        self.state = TurnState.FAILED
        logger.info("turn.failed kind={} message={}", kind, message)
        return TurnOutcome(
            status=TurnStatus.ERROR,
            message=message,
            error_kind=kind,
            finish_reason=finish_reason,
            iterations=iteration,
            usage=usage,
        )
