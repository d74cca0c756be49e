"""Long-term memory tool backed by a markdown file."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field

from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolErrorType, ToolResult

MEMORY_SECTION_HEADER = "## Gale Added Memories"
_LEADING_DASHES = re.compile(r"^(-+\s*)+")


def add_memory_entry(current: str, fact: str) -> str:
    """Return ``current`` with ``fact`` appended as a bullet under the memory section."""
    item = f"- {_LEADING_DASHES.sub('', fact.strip()).strip()}"
    header_at = current.find(MEMORY_SECTION_HEADER)
    if header_at == -1:
        if not current or current.endswith("\n\n"):
            separator = ""
        elif current.endswith("\n"):
            separator = "\n"
        else:
            separator = "\n\n"
        return f"{current}{separator}{MEMORY_SECTION_HEADER}\n{item}\n"

    section_start = header_at + len(MEMORY_SECTION_HEADER)
    section_end = current.find("\n## ", section_start)
    if section_end == -1:
        section_end = len(current)
    before = current[:section_start].rstrip()
    section = current[section_start:section_end].rstrip() + f"\n{item}"
    after = current[section_end:]
    return f"{before}\n{section.lstrip()}\n{after}".rstrip() + "\n"


def read_memory(memory_file: Path) -> str:
    try:
        return memory_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


class MemoryInput(BaseModel):
    fact: str = Field(
        ...,
        min_length=1,
        description="The specific fact or piece of information to remember. Should be a clear, self-contained statement.",
    )


class MemoryTool(BaseTool):
    name = "memory"
    display_name = "Memory"
    description = (
        "Saves a specific fact to long-term memory. Use it when the user explicitly asks you to remember "
        "something, or states a short fact about themselves or their environment worth keeping for future "
        "sessions. Do not use it for context that only matters in the current session."
    )
    params_model = MemoryInput
    cancel_label = "Memory save"

    def __init__(self, memory_file: Path) -> None:
        self.memory_file = memory_file.expanduser()

    async def invoke(
        self, params: MemoryInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            updated = add_memory_entry(read_memory(self.memory_file), params.fact)
            self.memory_file.parent.mkdir(parents=True, exist_ok=True)
            self.memory_file.write_text(updated, encoding="utf-8")
        except OSError as exc:
            return ToolResult.failure(f"Error saving memory: {exc}", ToolErrorType.FILE_WRITE_FAILURE)
        if progress is not None:
            progress("Memory saved")
        return ToolResult.success(
            f"Successfully saved memory: {params.fact}", display=f"Memory saved to {self.memory_file.name}"
        )
