"""Built-in tool set."""

from __future__ import annotations

from pathlib import Path

from gale.tools.fs import EditTool, GlobTool, GrepTool, LsTool, ReadFileTool, ReadManyFilesTool, WriteFileTool
from gale.tools.memory import MemoryTool
from gale.tools.registry import ToolRegistry
from gale.tools.shell import ShellTool
from gale.tools.todos import WriteTodosTool
from gale.tools.web import GroundedSearch, WebFetchTool, WebSearchTool


def register_builtin_tools(
    registry: ToolRegistry,
    workspace: Path,
    memory_file: Path,
    search: GroundedSearch | None = None,
) -> ToolRegistry:
    """Register built-in tools for one workspace.

    ``web_search`` is only registered when a grounded search callable is given.
    """
    for tool in (
        LsTool(workspace),
        ReadFileTool(workspace),
        ReadManyFilesTool(workspace),
        WriteFileTool(workspace),
        EditTool(workspace),
        GlobTool(workspace),
        GrepTool(workspace),
        ShellTool(workspace),
        WriteTodosTool(),
        WebFetchTool(),
        MemoryTool(memory_file),
    ):
        registry.register(tool)
    if search is not None:
        registry.register(WebSearchTool(search))
    return registry
