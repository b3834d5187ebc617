"""HTTP inspector that classifies media URLs by their response headers."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from httpx_retries import RetryTransport

from commonplace import __version__
from commonplace.config import MediaInspectorConfig, get_media_inspector_config
from commonplace.domain.mapping.contracts import MediaMetadataError
from commonplace.domain.ports.media import MediaMetadata

if TYPE_CHECKING:
    from types import TracebackType

log = getLogger(__name__)

# servers that refuse HEAD still answer a GET
_HEAD_REJECTED = frozenset({403, 405, 501})


def _content_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        size = int(raw)
    except ValueError:
        return None
    return size if size >= 0 else None


def _metadata(response: httpx.Response) -> MediaMetadata:
    content_type = response.headers.get("content-type")
    return MediaMetadata(
        content_type=content_type.split(";", 1)[0].strip().lower() if content_type else None,
        file_size=_content_length(response),
    )


class HttpMediaInspector:
    """``MediaInspector`` issuing a HEAD request, falling back to a streamed GET."""

    def __init__(
        self,
        config: MediaInspectorConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or get_media_inspector_config()
        retry_transport = RetryTransport(transport=transport, retry=self.config.retry.build())
        self._client = httpx.Client(
            transport=retry_transport,
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": f"{self.config.user_agent}/{__version__}"},
        )

    def inspect(self, url: str) -> MediaMetadata:
        try:
            response = self._client.head(url)
            if response.status_code in _HEAD_REJECTED:
                log.debug("HEAD rejected for %s (%s), retrying with GET", url, response.status_code)
                with self._client.stream("GET", url) as streamed:
                    streamed.raise_for_status()
                    return _metadata(streamed)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MediaMetadataError(
                f"Media lookup for {url} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MediaMetadataError(f"Media lookup for {url} failed: {exc}") from exc
        return _metadata(response)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpMediaInspector:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


if TYPE_CHECKING:
    from commonplace.domain.ports.media import MediaInspector

    _inspector_check: MediaInspector = HttpMediaInspector()
