"""HTTP transport for the Gemini generative language REST API."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from gale.config import DEFAULT_API_BASE, Settings
from gale.errors import ModelHTTPError, ResponseDecodeError


class GeminiClient:
    """Thin async wrapper over ``streamGenerateContent`` and ``generateContent``.

    The client never picks a key itself: callers pass the key for each call,
    which lets :class:`~gale.credentials.CredentialManager` rotate them.
    """

    def __init__(
        self,
        *,
        model: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.api_base = api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout or httpx.Timeout(60.0, connect=30.0),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> GeminiClient:
        return cls(model=settings.model, api_base=settings.api_base, timeout=settings.timeout(), transport=transport)

    def endpoint(self, method: str) -> str:
        return f"{self.api_base}/{self.model}:{method}"

    async def stream_generate_content(self, api_key: str, request: dict[str, Any]) -> str:
        """POST one streaming request and return the full raw body text."""
        logger.debug("gemini.request method=streamGenerateContent model={} contents={}", self.model, len(request.get("contents", [])))
        response = await self._client.post(
            self.endpoint("streamGenerateContent"),
            params={"alt": "sse", "key": api_key},
            json=request,
        )
        self._raise_for_status(response)
        return response.text

    async def generate_content(self, api_key: str, request: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(self.endpoint("generateContent"), params={"key": api_key}, json=request)
        self._raise_for_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseDecodeError(f"invalid JSON response: {exc}") from exc
        if not isinstance(payload, dict):
            raise ResponseDecodeError("response body is not a JSON object")
        return payload

    async def generate_grounded(self, api_key: str, query: str) -> dict[str, Any]:
        """Single-shot query with Google Search grounding enabled."""
        request = {
            "contents": [{"role": "user", "parts": [{"text": query}]}],
            "tools": [{"googleSearch": {}}],
        }
        return await self.generate_content(api_key, request)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text or "Unknown error"
        logger.warning("gemini.http.error status={}", response.status_code)
        raise ModelHTTPError(response.status_code, body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GeminiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
