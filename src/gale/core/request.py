"""Wire request builder."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from gale.core.content import (
    Content,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    Part,
    TextPart,
)


def build_request(
    history: Iterable[Content],
    declarations: Sequence[FunctionDeclaration],
    system_instruction: str,
    generation_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Serialize history, tool declarations and the system instruction."""

    request: dict[str, Any] = {"contents": [content_to_wire(content) for content in history]}
    if declarations:
        request["tools"] = [{"functionDeclarations": [decl.to_wire() for decl in declarations]}]
    if system_instruction:
        request["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    if generation_config:
        request["generationConfig"] = dict(generation_config)
    return request


def content_to_wire(content: Content) -> dict[str, Any]:
    return {"role": content.role, "parts": [part_to_wire(part) for part in content.parts]}


def part_to_wire(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        wire: dict[str, Any] = {"text": part.text}
        if part.thought:
            wire["thought"] = True
        return wire
    if isinstance(part, FunctionCallPart):
        call = part.function_call
        call_wire: dict[str, Any] = {"name": call.name, "args": dict(call.args)}
        if call.id:
            call_wire["id"] = call.id
        return {"functionCall": call_wire}
    if isinstance(part, FunctionResponsePart):
        response = part.function_response
        response_wire: dict[str, Any] = {"name": response.name, "response": dict(response.response)}
        if response.id:
            response_wire["id"] = response.id
        return {"functionResponse": response_wire}
    raise TypeError(f"unsupported part type: {type(part).__name__}")
