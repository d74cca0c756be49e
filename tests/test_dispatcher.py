from typing import Any

import pytest
from pydantic import BaseModel

from gale.core.content import FunctionCall, FunctionCallPart, FunctionResponsePart
from gale.core.decoder import ResponseUpdate
from gale.core.dispatcher import FunctionCallDispatcher, ResponseCollector, to_function_response
from gale.core.events import TurnCallbacks
from gale.core.history import ConversationHistory
from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolErrorType, ToolResult
from gale.tools.registry import ToolRegistry

from .conftest import EchoTool


class _EmptyInput(BaseModel):
    pass


class _ExplodingTool(BaseTool):
    name = "explode"
    display_name = "Explode"
    description = "Always fails."
    params_model = _EmptyInput

    async def invoke(
        self, params: _EmptyInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        raise RuntimeError("boom")


class _StructuredTool(BaseTool):
    name = "structured"
    display_name = "Structured"
    description = "Returns non-text content."
    params_model = _EmptyInput

    async def invoke(
        self, params: _EmptyInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        return ToolResult.success({"rows": [1, 2]}, display="2 rows")


def _setup(*tools: BaseTool) -> tuple[ConversationHistory, FunctionCallDispatcher]:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    history = ConversationHistory()
    return history, FunctionCallDispatcher(registry, history)


def _responses(history: ConversationHistory) -> list[tuple[str, dict[str, Any]]]:
    return [
        (part.function_response.id, part.function_response.response)
        for entry in history
        for part in entry.parts
        if isinstance(part, FunctionResponsePart)
    ]


@pytest.mark.asyncio
async def test_k_calls_produce_k_responses_in_order() -> None:
    echo = EchoTool()
    history, dispatcher = _setup(echo)
    calls = [FunctionCall.create("echo", {"value": str(idx)}, f"c{idx}") for idx in range(3)]

    results = await dispatcher.dispatch(calls)

    assert echo.seen == ["0", "1", "2"]
    assert [result.llm_content for result in results] == ["echo:0", "echo:1", "echo:2"]
    assert [(entry.role, type(entry.parts[0])) for entry in history] == [
        ("model", FunctionCallPart),
        ("user", FunctionResponsePart),
    ] * 3
    assert _responses(history) == [
        ("c0", {"output": "echo:0"}),
        ("c1", {"output": "echo:1"}),
        ("c2", {"output": "echo:2"}),
    ]


@pytest.mark.asyncio
async def test_unknown_tool_becomes_execution_error() -> None:
    history, dispatcher = _setup()

    (result,) = await dispatcher.dispatch([FunctionCall.create("missing", call_id="c1")])

    assert result.error is not None
    assert result.error.kind is ToolErrorType.EXECUTION_ERROR
    assert _responses(history) == [("c1", {"error": "Tool not found: missing"})]


@pytest.mark.asyncio
async def test_invalid_parameters_are_reported() -> None:
    history, dispatcher = _setup(EchoTool())

    (result,) = await dispatcher.dispatch([FunctionCall.create("echo", {"wrong": 1}, "c1")])

    assert result.error is not None
    assert result.error.kind is ToolErrorType.INVALID_PARAMETERS
    (response,) = _responses(history)
    assert response[0] == "c1"
    assert "value" in response[1]["error"]


@pytest.mark.asyncio
async def test_tool_exception_never_escapes() -> None:
    history, dispatcher = _setup(_ExplodingTool())

    (result,) = await dispatcher.dispatch([FunctionCall.create("explode", call_id="c1")])

    assert result.error is not None
    assert result.error.kind is ToolErrorType.EXECUTION_ERROR
    assert "boom" in _responses(history)[0][1]["error"]


@pytest.mark.asyncio
async def test_cancelled_before_start_is_still_correlated() -> None:
    echo = EchoTool()
    history, dispatcher = _setup(echo)
    cancel = CancellationToken()
    cancel.cancel()

    (result,) = await dispatcher.dispatch([FunctionCall.create("echo", {"value": "x"}, "c1")], cancel=cancel)

    assert echo.seen == []
    assert result.return_display == "Cancelled"
    assert _responses(history) == [("c1", {"output": "Tool execution cancelled"})]


@pytest.mark.asyncio
async def test_non_text_content_uses_generic_output() -> None:
    history, dispatcher = _setup(_StructuredTool())

    await dispatcher.dispatch([FunctionCall.create("structured", call_id="c1")])

    assert _responses(history) == [("c1", {"output": "Tool execution succeeded."})]


@pytest.mark.asyncio
async def test_callbacks_fire_in_dispatch_order() -> None:
    _, dispatcher = _setup(EchoTool())
    events: list[str] = []
    callbacks = TurnCallbacks(
        on_tool_call=lambda call: events.append(f"call:{call.id}"),
        on_tool_result=lambda name, result: events.append(f"result:{name}:{result.llm_content}"),
    )

    await dispatcher.dispatch(
        [FunctionCall.create("echo", {"value": "a"}, "c1"), FunctionCall.create("echo", {"value": "b"}, "c2")],
        callbacks=callbacks,
    )

    assert events == ["call:c1", "result:echo:echo:a", "call:c2", "result:echo:echo:b"]


@pytest.mark.asyncio
async def test_collector_streams_text_and_hides_thoughts() -> None:
    history, dispatcher = _setup(EchoTool())
    chunks: list[str] = []
    collector = ResponseCollector(history, dispatcher, TurnCallbacks(on_chunk=chunks.append), CancellationToken())

    await collector.consume(ResponseUpdate(texts=("Hel",), thoughts=("hmm",)))
    await collector.consume(ResponseUpdate(texts=("lo",), finish_reason="STOP"))

    assert chunks == ["Hel", "lo"]
    assert len(history) == 1
    assert history.entries[0].joined_text() == "Hello"
    assert collector.summary.finish_reason == "STOP"
    assert collector.summary.dispatched_calls == 0


@pytest.mark.asyncio
async def test_collector_dispatches_after_text() -> None:
    history, dispatcher = _setup(EchoTool())
    collector = ResponseCollector(history, dispatcher, TurnCallbacks(), CancellationToken())

    await collector.consume(
        ResponseUpdate(texts=("Looking",), function_calls=(FunctionCall.create("echo", {"value": "v"}, "c1"),))
    )

    assert [entry.role for entry in history] == ["model", "model", "user"]
    assert history.entries[0].joined_text() == "Looking"
    assert collector.summary.dispatched_calls == 1


def test_error_result_formats_as_error() -> None:
    call = FunctionCall.create("x", call_id="c9")
    response = to_function_response(call, ToolResult.failure("nope", ToolErrorType.FILE_NOT_FOUND))

    assert response.id == "c9"
    assert response.response == {"error": "nope"}
