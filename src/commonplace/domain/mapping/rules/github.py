"""GitHub users and repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from commonplace.domain.mapping.contracts import (
    BaseMappingRule,
    IndexEntryInsert,
    IndexLinkIntent,
    RecordInsert,
    StagingRef,
)
from commonplace.domain.model import (
    GithubRepository,
    GithubUser,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    RecordType,
)

from ._text import clean

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext


class GithubUserRule(BaseMappingRule[GithubUser]):
    row_type = GithubUser

    def map_row(self, row: GithubUser, context: MappingContext) -> IndexEntryInsert:
        login = clean(row.login)
        if login is None:
            raise self.fail(row, "user has no login")
        return IndexEntryInsert(
            main_type=IndexMainType.ENTITY,
            name=clean(row.name) or login,
            canonical_url=clean(row.blog) or clean(row.html_url),
            media_url=clean(row.avatar_url),
            notes=clean(row.bio),
        )


class GithubRepositoryRule(BaseMappingRule[GithubRepository]):
    row_type = GithubRepository

    def map_row(self, row: GithubRepository, context: MappingContext) -> RecordInsert:
        name = clean(row.name)
        if name is None:
            raise self.fail(row, "repository has no name")
        return RecordInsert(
            source=IntegrationSource.GITHUB,
            type=RecordType.ARTIFACT,
            title=name,
            url=clean(row.html_url),
            summary=clean(row.description),
            is_private=row.is_private,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
        )

    def links(self, row: GithubRepository) -> Iterator[LinkIntent]:
        if row.owner_id:
            yield IndexLinkIntent(IndexRole.CREATOR, StagingRef(GithubUser, row.owner_id))
        labels = [row.language, *row.topics]
        for label in dict.fromkeys(clean(label) for label in labels):
            if label:
                yield IndexLinkIntent(
                    IndexRole.TAG,
                    IndexEntryInsert(main_type=IndexMainType.CATEGORY, name=label),
                )
