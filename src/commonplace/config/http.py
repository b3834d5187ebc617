"""Configuration types for the HTTP media metadata inspector."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
from httpx_retries import Retry

from .env import env_float


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 3
    backoff_factor: float = 0.5
    max_backoff_wait: float = 30.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = field(default_factory=lambda: frozenset({"GET", "HEAD"}))
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0

    def build(self) -> Retry:
        return Retry(
            total=self.total,
            backoff_factor=self.backoff_factor,
            max_backoff_wait=self.max_backoff_wait,
            respect_retry_after_header=self.respect_retry_after_header,
            allowed_methods=tuple(self.allowed_methods),
            status_forcelist=tuple(self.status_forcelist),
            retry_on_exceptions=self.retry_on_exceptions,
            backoff_jitter=self.backoff_jitter,
        )


@dataclass(slots=True, frozen=True)
class MediaInspectorConfig:
    timeout_seconds: float = 10.0
    user_agent: str = "commonplace/media-inspector"
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def get_media_inspector_config() -> MediaInspectorConfig:
    return MediaInspectorConfig(
        timeout_seconds=env_float("COMMONPLACE_MEDIA_TIMEOUT", 10.0),
    )
