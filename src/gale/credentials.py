"""API key rotation and rate-limit aware retry."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

from loguru import logger

from gale.errors import KeysExhaustedError, NoCredentialsConfiguredError

if TYPE_CHECKING:
    from gale.config import Settings

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("rate limit", "rpm", "rpd", "429", "quota", "too many requests")


class ErrorClass(StrEnum):
    RATE_LIMIT = "rate_limit"
    FATAL = "fatal"


@dataclass(frozen=True)
class ApiKey:
    key: str
    label: str = ""
    active: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ProviderCredentials:
    """Ordered credentials for one provider."""

    provider: str
    keys: list[ApiKey] = field(default_factory=list)
    model: str = ""

    def active_keys(self) -> list[ApiKey]:
        return [key for key in self.keys if key.active]


class KeyRotator:
    """Round-robin cursor over the active keys of one provider."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cursor = 0
        self._provider: str | None = None

    @property
    def cursor(self) -> int:
        return self._cursor

    def reset(self) -> None:
        with self._lock:
            self._cursor = 0

    def next(self, provider: str, keys: list[ApiKey]) -> ApiKey | None:
        with self._lock:
            if provider != self._provider:
                self._cursor = 0
                self._provider = provider
            if not keys:
                return None
            index = self._cursor % len(keys)
            self._cursor = (index + 1) % len(keys)
            return keys[index]


def classify(error: BaseException | None) -> ErrorClass:
    """Tell retryable rate limiting apart from everything else."""
    if error is None:
        return ErrorClass.FATAL
    message = (str(error) or type(error).__name__).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ErrorClass.RATE_LIMIT
    return ErrorClass.FATAL


class CredentialManager:
    """Owns provider credentials and the rotation cursor.

    One manager is created per provider selection and shared by every
    conversation using it. The cursor resets whenever the selected provider
    changes and at the start of each retry cycle.
    """

    def __init__(self, providers: dict[str, ProviderCredentials] | None = None, *, selected: str = "google") -> None:
        self._providers: dict[str, ProviderCredentials] = dict(providers or {})
        self._selected = selected
        self._rotator = KeyRotator()

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialManager:
        keys = [ApiKey(key=key, label=f"key-{idx}") for idx, key in enumerate(settings.api_keys, start=1)]
        credentials = ProviderCredentials(provider=settings.provider, keys=keys, model=settings.model)
        return cls({settings.provider: credentials}, selected=settings.provider)

    @property
    def selected_provider(self) -> str:
        return self._selected

    @selected_provider.setter
    def selected_provider(self, provider: str) -> None:
        if provider != self._selected:
            self._selected = provider
            self._rotator.reset()

    @property
    def rotator(self) -> KeyRotator:
        return self._rotator

    def provider(self) -> ProviderCredentials:
        return self._providers.setdefault(self._selected, ProviderCredentials(provider=self._selected))

    @property
    def model(self) -> str:
        return self.provider().model

    def active_keys(self) -> list[ApiKey]:
        return self.provider().active_keys()

    def add_key(self, key: ApiKey, *, provider: str | None = None) -> None:
        name = provider or self._selected
        self._providers.setdefault(name, ProviderCredentials(provider=name)).keys.append(key)

    def set_key_active(self, key_id: str, active: bool) -> None:
        credentials = self.provider()
        credentials.keys = [replace(key, active=active) if key.id == key_id else key for key in credentials.keys]

    def next_key(self) -> str | None:
        selected = self._rotator.next(self._selected, self.active_keys())
        return selected.key if selected is not None else None

    def reset_rotation(self) -> None:
        self._rotator.reset()

    @staticmethod
    def classify(error: BaseException | None) -> ErrorClass:
        return classify(error)

    async def call_with_retry(self, call: Callable[[str], Awaitable[T]]) -> T:
        """Run ``call`` with each active key at most once.

        Returns the first success, re-raises the first non rate-limit error and
        raises ``KeysExhaustedError`` once every key was rate limited.
        """
        active = self.active_keys()
        if not active:
            raise NoCredentialsConfiguredError(f"No API keys configured for {self._selected}")

        self.reset_rotation()
        last_error: BaseException | None = None
        for attempt in range(1, len(active) + 1):
            key = self.next_key()
            if key is None:
                break
            logger.debug(
                "credentials.rotate provider={} attempt={}/{} cursor={}",
                self._selected,
                attempt,
                len(active),
                self._rotator.cursor,
            )
            try:
                return await call(key)
            except Exception as exc:
                if classify(exc) is ErrorClass.FATAL:
                    raise
                last_error = exc
                logger.warning(
                    "credentials.rate_limited provider={} attempt={}/{} error={}",
                    self._selected,
                    attempt,
                    len(active),
                    exc,
                )

        raise KeysExhaustedError(f"All API keys are exhausted for {self._selected}", last_error) from last_error
