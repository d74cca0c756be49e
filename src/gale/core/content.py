"""Conversation content model."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

Role = Literal["user", "model"]


def generate_call_id(name: str) -> str:
    """Build a correlation id for a function call the model left unnamed."""
    return f"{name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class FunctionCall:
    """A model request to invoke a named tool."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    @classmethod
    def create(cls, name: str, args: dict[str, Any] | None = None, call_id: str | None = None) -> FunctionCall:
        return cls(name=name, args=dict(args or {}), id=call_id or generate_call_id(name))


@dataclass(frozen=True)
class FunctionResponse:
    """The engine reply to one function call."""

    name: str
    response: dict[str, Any]
    id: str = ""


@dataclass(frozen=True)
class TextPart:
    text: str
    thought: bool = False


@dataclass(frozen=True)
class FunctionCallPart:
    function_call: FunctionCall


@dataclass(frozen=True)
class FunctionResponsePart:
    function_response: FunctionResponse


Part: TypeAlias = TextPart | FunctionCallPart | FunctionResponsePart


@dataclass(frozen=True)
class Content:
    """One conversational entry."""

    role: Role
    parts: tuple[Part, ...]

    @classmethod
    def text(cls, role: Role, text: str) -> Content:
        return cls(role=role, parts=(TextPart(text=text),))

    @property
    def is_text_only(self) -> bool:
        return bool(self.parts) and all(isinstance(part, TextPart) for part in self.parts)

    def joined_text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart) and not part.thought)


@dataclass(frozen=True)
class UsageMetadata:
    prompt_token_count: int | None = None
    candidates_token_count: int | None = None
    total_token_count: int | None = None

    @classmethod
    def from_payload(cls, payload: object) -> UsageMetadata | None:
        if not isinstance(payload, dict):
            return None

        def _count(key: str) -> int | None:
            value = payload.get(key)
            return value if isinstance(value, int) and value > 0 else None

        return cls(
            prompt_token_count=_count("promptTokenCount"),
            candidates_token_count=_count("candidatesTokenCount"),
            total_token_count=_count("totalTokenCount"),
        )


@dataclass(frozen=True)
class PropertySchema:
    """Schema of one tool parameter."""

    type: str
    description: str = ""
    enum: tuple[str, ...] | None = None
    items: PropertySchema | None = None
    properties: dict[str, PropertySchema] | None = None
    required: tuple[str, ...] = ()

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"type": self.type}
        if self.description:
            wire["description"] = self.description
        if self.enum is not None:
            wire["enum"] = list(self.enum)
        if self.items is not None:
            wire["items"] = self.items.to_wire()
        if self.properties is not None:
            wire["properties"] = {name: prop.to_wire() for name, prop in self.properties.items()}
            if self.required:
                wire["required"] = list(self.required)
        return wire


@dataclass(frozen=True)
class ParameterSchema:
    properties: dict[str, PropertySchema] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    type: str = "object"

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "properties": {name: prop.to_wire() for name, prop in self.properties.items()},
            "required": list(self.required),
        }


@dataclass(frozen=True)
class FunctionDeclaration:
    """Tool declaration advertised to the model."""

    name: str
    description: str
    parameters: ParameterSchema

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_wire(),
        }
