"""Local inference through an Ollama server.

This backend is a plain streaming chat: no tool calling, no continuation and
no key rotation.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from gale.config import Settings
from gale.core.events import TurnCallbacks, TurnErrorKind, TurnOutcome, TurnState, TurnStatus
from gale.tools.base import CancellationToken


class OllamaClient:
    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.state = TurnState.IDLE
        self._messages: list[dict[str, str]] = []
        self._client = httpx.AsyncClient(
            timeout=timeout or httpx.Timeout(120.0, connect=30.0, write=60.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> OllamaClient:
        return cls(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            timeout=settings.timeout(read=settings.ollama_read_timeout),
            transport=transport,
        )

    @property
    def messages(self) -> list[dict[str, str]]:
        return list(self._messages)

    def reset(self) -> None:
        self._messages.clear()
        self.state = TurnState.IDLE

    async def send_message(
        self,
        message: str,
        *,
        callbacks: TurnCallbacks | None = None,
        cancel: CancellationToken | None = None,
    ) -> TurnOutcome:
        sinks = callbacks or TurnCallbacks()
        token = cancel or CancellationToken()
        self._messages.append({"role": "user", "content": message})
        payload: dict[str, Any] = {"model": self.model, "messages": list(self._messages), "stream": True}

        self.state = TurnState.AWAITING_RESPONSE
        reply: list[str] = []
        try:
            async with self._client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace") or "Unknown error"
                    return self._fail(
                        TurnErrorKind.REQUEST_FAILED, f"Ollama API error: {response.status_code} - {body}"
                    )
                async for line in response.aiter_lines():
                    if token.cancelled:
                        return self._fail(TurnErrorKind.CANCELLED, "Turn cancelled.")
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as exc:
                        logger.warning("ollama.decode.error error={}", exc)
                        return self._fail(
                            TurnErrorKind.PROTOCOL_VIOLATION, f"Failed to parse Ollama response: {exc}"
                        )
                    message = chunk.get("message") if isinstance(chunk, dict) else None
                    content = message.get("content") if isinstance(message, dict) else None
                    if not (
                        isinstance(chunk, dict)
                        and isinstance(message, dict | None)
                        and isinstance(content, str | None)
                    ):
                        logger.warning("ollama.decode.unexpected line={}", line[:200])
                        return self._fail(TurnErrorKind.PROTOCOL_VIOLATION, f"Unexpected Ollama chunk: {line[:200]}")
                    if content:
                        reply.append(content)
                        sinks.chunk(content)
                    if chunk.get("done"):
                        self._messages.append({"role": "assistant", "content": "".join(reply)})
                        self.state = TurnState.TERMINAL
                        return TurnOutcome(status=TurnStatus.DONE, finish_reason="STOP", iterations=1)
        except httpx.HTTPError as exc:
            logger.error("ollama.request.error error={}", exc)
            return self._fail(TurnErrorKind.REQUEST_FAILED, f"Network error: {exc}")

        return self._fail(TurnErrorKind.PROTOCOL_VIOLATION, "Ollama stream ended without a done marker.")

    def _fail(self, kind: TurnErrorKind, message: str) -> TurnOutcome:
        self.state = TurnState.FAILED
        return TurnOutcome(status=TurnStatus.ERROR, message=message, error_kind=kind, iterations=1)

    async def aclose(self) -> None:
        await self._client.aclose()
