"""Browser history: one record per visited URL."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from commonplace.domain.mapping.contracts import BaseMappingRule, RecordInsert
from commonplace.domain.model import BrowserHistoryPage, IntegrationSource, RecordType

from ._text import clean

if TYPE_CHECKING:
    from commonplace.domain.mapping.contracts import MappingContext

MAX_URL_LENGTH: Final[int] = 1000

# Dropped only from URLs over MAX_URL_LENGTH; they carry login state, not content.
REMOVABLE_QUERY_PARAMS: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "as",
        "audience",
        "client_id",
        "code",
        "code_challenge",
        "code_challenge_method",
        "connection",
        "consent_verifier",
        "continue",
        "cst",
        "k",
        "login_challenge",
        "login_verifier",
        "nonce",
        "redirect_uri",
        "refresh_token",
        "response_type",
        "scope",
        "sidt",
        "state",
        "TL",
        "upn",
    }
)


def sanitize_url(url: str) -> str | None:
    """Shorten an overlong URL by dropping auth query parameters.

    Returns ``None`` when the URL is still longer than :data:`MAX_URL_LENGTH`.
    """

    if len(url) <= MAX_URL_LENGTH:
        return url
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in REMOVABLE_QUERY_PARAMS
    ]
    sanitized = urlunsplit(parts._replace(query=urlencode(query)))
    if len(sanitized) <= MAX_URL_LENGTH:
        return sanitized
    return None


class BrowserHistoryPageRule(BaseMappingRule[BrowserHistoryPage]):
    row_type = BrowserHistoryPage

    def eligible(self, row: BrowserHistoryPage) -> bool:
        if row.is_deleted:
            return False
        url = clean(row.url)
        return url is not None and sanitize_url(url) is not None

    def map_row(self, row: BrowserHistoryPage, context: MappingContext) -> RecordInsert:
        url = sanitize_url(clean(row.url) or "")
        if not url:
            raise self.fail(row, "page has no usable url")
        return RecordInsert(
            source=IntegrationSource.BROWSER_HISTORY,
            type=RecordType.ARTIFACT,
            title=clean(row.page_title) or url,
            url=url,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
        )
