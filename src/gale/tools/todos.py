"""Planning tool that records the current subtask list."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolResult


class TodoStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Todo(BaseModel):
    description: str = Field(..., min_length=1, description="The description of the task.")
    status: TodoStatus = Field(default=TodoStatus.PENDING, description="The current status of the task.")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().lower()
            return normalized if normalized in {status.value for status in TodoStatus} else TodoStatus.PENDING
        return value


class WriteTodosInput(BaseModel):
    todos: list[Todo] = Field(..., description="The full list of todos. This overwrites any existing list.")


class WriteTodosTool(BaseTool):
    name = "write_todos"
    display_name = "WriteTodos"
    description = (
        "Lists the subtasks required to complete the current request so progress stays visible. "
        "Use it for complex requests that need several steps, not for tasks that take fewer than two.\n"
        "Task states:\n"
        "- pending: work has not begun.\n"
        "- in_progress: marked just before starting; only one subtask at a time.\n"
        "- completed: finished successfully.\n"
        "- cancelled: no longer needed."
    )
    params_model = WriteTodosInput
    cancel_label = "Todo update"

    def __init__(self) -> None:
        self.todos: list[Todo] = []

    async def invoke(
        self, params: WriteTodosInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        self.todos = list(params.todos)
        display = f"Updated {len(self.todos)} todo(s)"
        if progress is not None:
            progress(display)
        if not self.todos:
            return ToolResult.success("Successfully cleared the todo list.", display=display)
        listing = "\n".join(
            f"{index}. [{todo.status.value}] {todo.description}" for index, todo in enumerate(self.todos, start=1)
        )
        return ToolResult.success(
            f"Successfully updated the todo list. The current list is now:\n{listing}", display=display
        )
