"""Model backends."""

from gale.client.gemini import GeminiClient
from gale.client.grounding import GroundedAnswer, insert_citations, parse_grounded_answer, render_sources
from gale.client.ollama import OllamaClient

__all__ = [
    "GeminiClient",
    "GroundedAnswer",
    "OllamaClient",
    "insert_citations",
    "parse_grounded_answer",
    "render_sources",
]
