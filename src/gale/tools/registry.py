"""Unified tool registry."""

from __future__ import annotations

from loguru import logger

from gale.core.content import FunctionDeclaration
from gale.tools.base import BaseTool


class ToolRegistry:
    """Name-keyed table of tools advertised to the model."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logger.debug("tool.registry.replace name={}", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def declarations(self) -> list[FunctionDeclaration]:
        return [tool.declare() for tool in self._tools.values()]
