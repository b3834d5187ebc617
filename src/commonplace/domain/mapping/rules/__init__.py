"""Per-source mapping rules."""

from __future__ import annotations

from .airtable import (
    AirtableAttachmentRule,
    AirtableCreatorRule,
    AirtableExtractRule,
    AirtableFormatRule,
    AirtableSpaceRule,
)
from .browser_history import BrowserHistoryPageRule, sanitize_url
from .github import GithubRepositoryRule, GithubUserRule
from .lightroom import LightroomImageRule
from .raindrop import RaindropBookmarkRule, RaindropCollectionRule
from .readwise import ReadwiseDocumentRule, rating_from_tags
from .twitter import TwitterMediaRule, TwitterTweetRule, TwitterUserRule

__all__ = [
    "AirtableAttachmentRule",
    "AirtableCreatorRule",
    "AirtableExtractRule",
    "AirtableFormatRule",
    "AirtableSpaceRule",
    "BrowserHistoryPageRule",
    "GithubRepositoryRule",
    "GithubUserRule",
    "LightroomImageRule",
    "RaindropBookmarkRule",
    "RaindropCollectionRule",
    "ReadwiseDocumentRule",
    "TwitterMediaRule",
    "TwitterTweetRule",
    "TwitterUserRule",
    "rating_from_tags",
    "sanitize_url",
]
