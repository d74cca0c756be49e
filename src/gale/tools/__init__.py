"""Tools package for Gale."""

from gale.tools.base import BaseTool, CancellationToken, ToolError, ToolErrorType, ToolResult
from gale.tools.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "CancellationToken",
    "ToolError",
    "ToolErrorType",
    "ToolRegistry",
    "ToolResult",
]
