"""Tool contract shared by every built-in tool."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Generic, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from gale.core.content import FunctionDeclaration, ParameterSchema, PropertySchema
from gale.errors import InvalidToolParametersError

ProgressCallback = Callable[[str], None]
ParamsT = TypeVar("ParamsT", bound=BaseModel)


class ToolErrorType(StrEnum):
    INVALID_PARAMETERS = "invalid_parameters"
    EXECUTION_ERROR = "execution_error"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    READ_CONTENT_FAILURE = "read_content_failure"
    FILE_WRITE_FAILURE = "file_write_failure"
    ATTEMPT_TO_CREATE_EXISTING_FILE = "attempt_to_create_existing_file"
    EDIT_NO_OCCURRENCE_FOUND = "edit_no_occurrence_found"
    EDIT_EXPECTED_OCCURRENCE_MISMATCH = "edit_expected_occurrence_mismatch"
    EDIT_NO_CHANGE = "edit_no_change"
    WEB_FETCH_FAILED = "web_fetch_failed"
    WEB_SEARCH_FAILED = "web_search_failed"


@dataclass(frozen=True)
class ToolError:
    message: str
    kind: ToolErrorType


@dataclass(frozen=True)
class ToolResult:
    """Result of one tool execution."""

    llm_content: Any
    return_display: str = ""
    error: ToolError | None = None

    @classmethod
    def success(cls, content: Any, display: str | None = None) -> ToolResult:
        if display is None:
            display = content if isinstance(content, str) else "ok"
        return cls(llm_content=content, return_display=display)

    @classmethod
    def failure(cls, message: str, kind: ToolErrorType, *, display: str | None = None) -> ToolResult:
        return cls(
            llm_content=message,
            return_display=display or f"Error: {message}",
            error=ToolError(message=message, kind=kind),
        )

    @classmethod
    def cancelled(cls, action: str) -> ToolResult:
        return cls(llm_content=f"{action} cancelled", return_display="Cancelled")

    @property
    def is_error(self) -> bool:
        return self.error is not None


class CancellationToken:
    """Cooperative cancellation flag shared between a turn and its tools."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class BaseTool(ABC, Generic[ParamsT]):
    """One tool: declaration, typed parameter decode and cancellable execution."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[type[BaseModel]]
    cancel_label: ClassVar[str] = "Tool execution"

    def declare(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=parameter_schema(self.params_model),
        )

    def validate(self, raw_args: dict[str, Any]) -> ParamsT:
        try:
            return self.params_model.model_validate(raw_args)  # type: ignore[return-value]
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc']) or 'params'}: {error['msg']}" for error in exc.errors()
            )
            raise InvalidToolParametersError(f"Invalid parameters for {self.name}: {details}") from exc

    @abstractmethod
    async def invoke(
        self,
        params: ParamsT,
        cancel: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> ToolResult:
        """Execute the tool. Failures are reported through the result."""

    async def run(
        self,
        params: ParamsT,
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> ToolResult:
        token = cancel or CancellationToken()
        if token.cancelled:
            return ToolResult.cancelled(self.cancel_label)
        try:
            return await self.invoke(params, token, progress)
        except Exception as exc:
            logger.exception("tool.invoke.error name={}", self.name)
            return ToolResult.failure(f"Error executing tool {self.name}: {exc!s}", ToolErrorType.EXECUTION_ERROR)


def parameter_schema(model: type[BaseModel]) -> ParameterSchema:
    """Convert a pydantic model into the function-declaration schema."""

    schema = model.model_json_schema()
    defs = schema.get("$defs", {})
    properties = {
        name: _property_schema(prop, defs) for name, prop in schema.get("properties", {}).items()
    }
    return ParameterSchema(properties=properties, required=tuple(schema.get("required", ())))


def _property_schema(raw: dict[str, Any], defs: dict[str, Any]) -> PropertySchema:
    description = raw.get("description", "")
    node = _resolve(raw, defs)
    if "anyOf" in node:
        # Optional[X] renders as anyOf [X, null]
        options = [_resolve(item, defs) for item in node["anyOf"] if item.get("type") != "null"]
        node = options[0] if options else {"type": "string"}
    description = description or node.get("description", "")

    type_name = node.get("type", "string")
    enum = node.get("enum")
    if enum is None and "const" in node:
        enum = [node["const"]]

    items = None
    if type_name == "array" and isinstance(node.get("items"), dict):
        items = _property_schema(node["items"], defs)

    properties = None
    required: tuple[str, ...] = ()
    if type_name == "object" and "properties" in node:
        properties = {name: _property_schema(prop, defs) for name, prop in node["properties"].items()}
        required = tuple(node.get("required", ()))

    return PropertySchema(
        type=type_name,
        description=description,
        enum=tuple(str(value) for value in enum) if enum is not None else None,
        items=items,
        properties=properties,
        required=required,
    )


def _resolve(node: dict[str, Any], defs: dict[str, Any]) -> dict[str, Any]:
    all_of = node.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1:
        node = {**_resolve(all_of[0], defs), **{key: value for key, value in node.items() if key != "allOf"}}
    ref = node.get("$ref")
    if not isinstance(ref, str):
        return node
    return dict(defs.get(ref.rsplit("/", 1)[-1], {}))
