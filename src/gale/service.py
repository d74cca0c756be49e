"""Service wiring: settings, credentials, tools and the active backend."""

from __future__ import annotations

from pathlib import Path

import httpx
from loguru import logger

from gale.client.gemini import GeminiClient
from gale.client.grounding import GroundedAnswer, parse_grounded_answer
from gale.client.ollama import OllamaClient
from gale.config import Settings
from gale.core.content import FunctionDeclaration
from gale.core.events import TurnCallbacks, TurnOutcome
from gale.core.history import ConversationHistory
from gale.core.turn import TurnController
from gale.credentials import CredentialManager
from gale.errors import ConfigurationError
from gale.tools.base import CancellationToken
from gale.tools.builtin import register_builtin_tools
from gale.tools.memory import read_memory
from gale.tools.registry import ToolRegistry


class AgentService:
    """Owns one conversation and rebuilds its backend when the setup changes."""

    def __init__(
        self,
        settings: Settings,
        *,
        credentials: CredentialManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials or CredentialManager.from_settings(settings)
        self._transport = transport
        self._workspace = settings.resolve_workspace()
        self._use_ollama = settings.use_ollama
        self._history = ConversationHistory()
        self.gemini = GeminiClient.from_settings(settings, transport=transport)
        self.ollama: OllamaClient | None = None
        self.registry = ToolRegistry()
        self.controller: TurnController | None = None
        self._build()

    @property
    def workspace(self) -> Path:
        return self._workspace

    @property
    def use_ollama(self) -> bool:
        return self._use_ollama

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def model(self) -> str:
        if self._use_ollama and self.ollama is not None:
            return self.ollama.model
        return self.gemini.model

    def _build(self) -> None:
        self.registry = register_builtin_tools(
            ToolRegistry(),
            self._workspace,
            self.settings.memory_file,
            search=self.grounded_search,
        )
        if self._use_ollama:
            if self.ollama is None:
                self.ollama = OllamaClient.from_settings(self.settings, transport=self._transport)
            self.controller = None
        else:
            self.controller = TurnController(
                client=self.gemini,
                credentials=self.credentials,
                registry=self.registry,
                history=self._history,
                max_turns=self.settings.max_turns,
                generation_config=self.settings.generation_config(),
            )
        logger.info(
            "service.build workspace={} backend={} tools={}",
            self._workspace,
            "ollama" if self._use_ollama else "gemini",
            len(self.registry),
        )

    def set_workspace(self, workspace: Path) -> None:
        resolved = workspace.expanduser().resolve()
        if resolved == self._workspace:
            return
        self._workspace = resolved
        self._build()

    def set_use_ollama(self, enabled: bool) -> None:
        if enabled == self._use_ollama:
            return
        self._use_ollama = enabled
        self._build()

    def declarations(self) -> list[FunctionDeclaration]:
        return self.registry.declarations()

    async def send_message(
        self,
        message: str,
        *,
        callbacks: TurnCallbacks | None = None,
        cancel: CancellationToken | None = None,
    ) -> TurnOutcome:
        if self.controller is None:
            if self.ollama is None:
                raise ConfigurationError("No model backend is configured")
            return await self.ollama.send_message(message, callbacks=callbacks, cancel=cancel)
        self.controller.memory = read_memory(self.settings.memory_file.expanduser())
        return await self.controller.send_message(message, callbacks=callbacks, cancel=cancel)

    async def grounded_search(self, query: str) -> GroundedAnswer | None:
        payload = await self.credentials.call_with_retry(lambda key: self.gemini.generate_grounded(key, query))
        return parse_grounded_answer(payload)

    def reset(self) -> None:
        self._history.reset()
        if self.controller is not None:
            self.controller.reset()
        if self.ollama is not None:
            self.ollama.reset()

    async def close(self) -> None:
        await self.gemini.aclose()
        if self.ollama is not None:
            await self.ollama.aclose()
