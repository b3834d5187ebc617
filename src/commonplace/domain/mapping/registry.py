"""Source -> mapping rule table."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

from commonplace.domain.model import IntegrationSource

from .rules import (
    AirtableAttachmentRule,
    AirtableCreatorRule,
    AirtableExtractRule,
    AirtableFormatRule,
    AirtableSpaceRule,
    BrowserHistoryPageRule,
    GithubRepositoryRule,
    GithubUserRule,
    LightroomImageRule,
    RaindropBookmarkRule,
    RaindropCollectionRule,
    ReadwiseDocumentRule,
    TwitterMediaRule,
    TwitterTweetRule,
    TwitterUserRule,
)

if TYPE_CHECKING:
    from .contracts import MappingRule

# Rules run in order: tables a rule links to come before it.
MAPPING_RULES: Final[dict[IntegrationSource, tuple[MappingRule[Any], ...]]] = {
    IntegrationSource.AIRTABLE: (
        AirtableFormatRule(),
        AirtableCreatorRule(),
        AirtableSpaceRule(),
        AirtableExtractRule(),
        AirtableAttachmentRule(),
    ),
    IntegrationSource.GITHUB: (GithubUserRule(), GithubRepositoryRule()),
    IntegrationSource.READWISE: (ReadwiseDocumentRule(),),
    IntegrationSource.TWITTER: (TwitterUserRule(), TwitterTweetRule(), TwitterMediaRule()),
    IntegrationSource.LIGHTROOM: (LightroomImageRule(),),
    IntegrationSource.BROWSER_HISTORY: (BrowserHistoryPageRule(),),
    IntegrationSource.RAINDROP: (RaindropCollectionRule(), RaindropBookmarkRule()),
}


class UnknownSourceError(LookupError):
    """Raised when no mapping rules are registered for a source."""


def rules_for(source: IntegrationSource | str) -> tuple[MappingRule[Any], ...]:
    try:
        return MAPPING_RULES[IntegrationSource(source)]
    except (KeyError, ValueError) as exc:
        raise UnknownSourceError(f"No mapping rules registered for source {source!r}") from exc


def mappable_sources() -> tuple[IntegrationSource, ...]:
    return tuple(MAPPING_RULES)
