"""Gale - a tool-calling agent engine for Gemini models."""

from gale.core.turn import TurnController
from gale.service import AgentService
from gale.tools.registry import ToolRegistry

__version__ = "0.1.0"

__all__ = ["AgentService", "ToolRegistry", "TurnController"]
