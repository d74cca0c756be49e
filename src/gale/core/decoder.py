"""Response body decoder for the three wire shapes.

The model endpoint may answer with a JSON array of complete responses, a
Server-Sent-Events stream or one bare JSON object. The declared content type is
not trusted: :func:`frame_response` inspects the body, and
:class:`ResponseDecoder` runs the same per-object routine over whatever frames
it found.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from loguru import logger

from gale.core.content import FunctionCall, UsageMetadata
from gale.errors import ResponseDecodeError

SSE_DATA_PREFIX = "data:"
SSE_DONE_MARKER = "[DONE]"


class ResponseShape(StrEnum):
    JSON_ARRAY = "json_array"
    EVENT_STREAM = "event_stream"
    JSON_OBJECT = "json_object"


@dataclass(frozen=True)
class FramedResponse:
    """A body split into frames according to its detected shape.

    Array frames are already-parsed elements; event-stream frames are the raw
    ``data:`` payloads; a single object yields one raw frame.
    """

    shape: ResponseShape
    frames: tuple[Any, ...]


@dataclass(frozen=True)
class ResponseUpdate:
    """Everything candidate 0 carried in one response object."""

    texts: tuple[str, ...] = ()
    thoughts: tuple[str, ...] = ()
    function_calls: tuple[FunctionCall, ...] = ()
    finish_reason: str | None = None
    usage: UsageMetadata | None = None


def frame_response(body: str | bytes) -> FramedResponse:
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    stripped = text.strip()

    if stripped.startswith("["):
        try:
            elements = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise ResponseDecodeError(f"invalid JSON array response: {exc}") from exc
        if not isinstance(elements, list):
            raise ResponseDecodeError("JSON array response is not a list")
        return FramedResponse(ResponseShape.JSON_ARRAY, tuple(elements))

    payloads: list[str] = []
    saw_data = False
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(":"):
            continue
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        saw_data = True
        payload = line[len(SSE_DATA_PREFIX) :].strip()
        if not payload or payload == SSE_DONE_MARKER:
            continue
        payloads.append(payload)
    if saw_data:
        return FramedResponse(ResponseShape.EVENT_STREAM, tuple(payloads))

    return FramedResponse(ResponseShape.JSON_OBJECT, (stripped,))


class ResponseDecoder:
    """Turns a raw response body into per-object :class:`ResponseUpdate` values."""

    def decode(self, body: str | bytes) -> Iterator[ResponseUpdate]:
        framed = frame_response(body)
        logger.debug("decoder.frame shape={} frames={}", framed.shape, len(framed.frames))

        if framed.shape is ResponseShape.JSON_ARRAY:
            for index, element in enumerate(framed.frames):
                if not isinstance(element, dict):
                    logger.warning("decoder.skip index={} reason=not-an-object", index)
                    continue
                yield self.decode_object(element)
            return

        if framed.shape is ResponseShape.EVENT_STREAM:
            for payload in framed.frames:
                try:
                    parsed = json.loads(payload)
                except json.JSONDecodeError as exc:
                    logger.warning("decoder.skip reason=malformed-line error={}", exc)
                    continue
                if not isinstance(parsed, dict):
                    logger.warning("decoder.skip reason=not-an-object")
                    continue
                update = self.decode_object(parsed)
                yield update
                if update.finish_reason is not None:
                    return
            return

        (raw,) = framed.frames
        if not raw:
            raise ResponseDecodeError("empty response body")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ResponseDecodeError(f"invalid JSON response: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ResponseDecodeError("response body is not a JSON object")
        yield self.decode_object(parsed)

    def decode_object(self, payload: dict[str, Any]) -> ResponseUpdate:
        usage = UsageMetadata.from_payload(payload.get("usageMetadata"))
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ResponseUpdate(finish_reason=_finish_reason(payload), usage=usage)

        candidate = candidates[0]
        texts: list[str] = []
        thoughts: list[str] = []
        calls: list[FunctionCall] = []

        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts if isinstance(parts, list) else []:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, str):
                if part.get("thought") is True:
                    thoughts.append(text)
                elif text:
                    texts.append(text)
            call = _function_call(part.get("functionCall"))
            if call is not None:
                calls.append(call)

        return ResponseUpdate(
            texts=tuple(texts),
            thoughts=tuple(thoughts),
            function_calls=tuple(calls),
            finish_reason=_finish_reason(candidate) or _finish_reason(payload),
            usage=usage,
        )


def _finish_reason(node: dict[str, Any]) -> str | None:
    value = node.get("finishReason")
    if isinstance(value, str) and value:
        return value
    return None


def _function_call(raw: object) -> FunctionCall | None:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
        logger.warning("decoder.skip reason=malformed-function-call payload={}", raw)
        return None
    args = raw.get("args")
    call_id = raw.get("id")
    return FunctionCall.create(
        raw["name"],
        args if isinstance(args, dict) else {},
        call_id if isinstance(call_id, str) and call_id else None,
    )
