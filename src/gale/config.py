"""Configuration management for Gale."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

import httpx
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash-exp"
MAX_TURNS_CEILING = 100


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GALE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider configuration
    provider: str = Field(default="google", description="Credential provider name")
    model: str = Field(default=DEFAULT_MODEL, description="Model name used for requests")
    api_keys: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Comma-separated API keys, rotated round-robin"
    )
    api_base: str = Field(default=DEFAULT_API_BASE, description="Base URL of the models endpoint")

    # Network timeouts, seconds
    connect_timeout: float = Field(default=30.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    write_timeout: float = Field(default=60.0, gt=0)

    # Turn loop
    max_turns: int = Field(default=MAX_TURNS_CEILING, ge=1, le=MAX_TURNS_CEILING)

    # Generation
    temperature: float | None = Field(default=None, ge=0)
    top_p: float | None = Field(default=None, ge=0, le=1)
    top_k: int | None = Field(default=None, ge=1)
    include_thoughts: bool = Field(default=False, description="Ask the model to stream thought parts")

    # Workspace
    workspace_path: Path | None = Field(default=None, description="Workspace directory path")
    memory_file: Path = Field(
        default_factory=lambda: Path.home() / ".gale" / "GALE.md",
        description="File where the memory tool stores facts",
    )

    # Local inference
    use_ollama: bool = Field(default=False)
    ollama_base_url: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="llama3.2")
    ollama_read_timeout: float = Field(default=120.0, gt=0)

    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("api_keys", mode="before")
    @classmethod
    def _split_api_keys(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("api_base", "ollama_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    def timeout(self, *, read: float | None = None) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=read if read is not None else self.read_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    def generation_config(self) -> dict[str, Any] | None:
        config: dict[str, Any] = {}
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.top_p is not None:
            config["topP"] = self.top_p
        if self.top_k is not None:
            config["topK"] = self.top_k
        if self.include_thoughts:
            config["thinkingConfig"] = {"includeThoughts": True}
        return config or None

    def resolve_workspace(self) -> Path:
        return (self.workspace_path or Path.cwd()).expanduser().resolve()


def get_settings(workspace_path: Path | None = None, **overrides: Any) -> Settings:
    """Get application settings.

    Args:
        workspace_path: Optional workspace path override
        **overrides: Field overrides applied on top of the environment

    Returns:
        Settings instance
    """
    if workspace_path is not None:
        overrides["workspace_path"] = workspace_path
    return Settings(**overrides)
