from __future__ import annotations

import json
from typing import Any

import pytest
from pydantic import BaseModel, Field

from gale.credentials import ApiKey, CredentialManager, ProviderCredentials
from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolResult


def sse(*payloads: dict[str, Any]) -> str:
    return "".join(f"data: {json.dumps(payload)}\n\n" for payload in payloads)


def text_chunk(text: str, finish: str | None = None, *, thought: bool = False) -> dict[str, Any]:
    part: dict[str, Any] = {"text": text}
    if thought:
        part["thought"] = True
    candidate: dict[str, Any] = {"content": {"role": "model", "parts": [part]}}
    if finish:
        candidate["finishReason"] = finish
    return {"candidates": [candidate]}


def call_chunk(*calls: dict[str, Any], finish: str | None = None) -> dict[str, Any]:
    candidate: dict[str, Any] = {
        "content": {"role": "model", "parts": [{"functionCall": call} for call in calls]},
    }
    if finish:
        candidate["finishReason"] = finish
    return {"candidates": [candidate]}


class ScriptedModelClient:
    """Returns queued bodies (or raises queued errors) in order."""

    def __init__(self, responses: list[str | BaseException]) -> None:
        self._responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.keys: list[str] = []

    async def stream_generate_content(self, api_key: str, request: dict[str, Any]) -> str:
        self.keys.append(api_key)
        self.requests.append(request)
        if not self._responses:
            raise AssertionError("unexpected model request")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class EchoInput(BaseModel):
    value: str = Field(..., description="Value to echo")


class EchoTool(BaseTool):
    name = "echo"
    display_name = "Echo"
    description = "Echo a value back."
    params_model = EchoInput

    def __init__(self) -> None:
        self.seen: list[str] = []

    async def invoke(
        self, params: EchoInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        self.seen.append(params.value)
        return ToolResult.success(f"echo:{params.value}")


def make_credentials(*keys: str, model: str = "gemini-test") -> CredentialManager:
    provider = ProviderCredentials(provider="google", keys=[ApiKey(key=key) for key in keys], model=model)
    return CredentialManager({"google": provider}, selected="google")


@pytest.fixture
def credentials() -> CredentialManager:
    return make_credentials("k1")
