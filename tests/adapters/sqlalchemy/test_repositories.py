"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.orm import Session  # noqa: TC002

from commonplace.adapters.sqlalchemy.repositories import (
    SqlAlchemyIndexEntryRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyMediaRepository,
    SqlAlchemyPredicateRepository,
    SqlAlchemyRecordIndexEntryRepository,
    SqlAlchemyRecordRepository,
    SqlAlchemyStagingRepository,
)
from commonplace.domain.mapping import IndexEntryInsert, MediaInsert, RecordInsert, RecordKey
from commonplace.domain.model import (
    PREDICATES,
    CanonicalKind,
    ChildType,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    MediaType,
    ReadwiseDocument,
    Record,
    TwitterMedia,
    TwitterTweet,
)

NOW = datetime(2024, 5, 1, tzinfo=UTC)
LATER = datetime(2024, 6, 1, tzinfo=UTC)


def _record(session: Session, **values: object) -> Record:
    record = Record(**values)  # type: ignore[arg-type]
    session.add(record)
    session.flush()
    return record


def test_record_upsert_creates_once_per_natural_key(sqlite_session: Session) -> None:
    repository = SqlAlchemyRecordRepository(sqlite_session)
    key = RecordKey(IntegrationSource.GITHUB, "github_repositories", "r1")
    insert = RecordInsert(source=IntegrationSource.GITHUB, title="hello", rating=2)

    first = repository.upsert_by_natural_key(key, insert, now=NOW)
    second = repository.upsert_by_natural_key(key, insert, now=LATER)
    sqlite_session.commit()

    assert first.created is True
    assert second.created is False
    assert first.id == second.id
    record = repository.get(first.id)
    assert record is not None
    assert record.title == "hello"
    assert record.rating == 2
    assert record.sources == {IntegrationSource.GITHUB}
    assert record.record_created_at == NOW
    assert record.record_updated_at == LATER


def test_record_upsert_keys_differ_by_namespace(sqlite_session: Session) -> None:
    repository = SqlAlchemyRecordRepository(sqlite_session)
    insert = RecordInsert(source=IntegrationSource.TWITTER, content="hi")

    tweet = repository.upsert_by_natural_key(
        RecordKey(IntegrationSource.TWITTER, "twitter_tweets", "1"), insert, now=NOW
    )
    other = repository.upsert_by_natural_key(
        RecordKey(IntegrationSource.TWITTER, "twitter_media", "1"), insert, now=NOW
    )

    assert tweet.id != other.id


def test_children_sorted_by_order_key(sqlite_session: Session) -> None:
    repository = SqlAlchemyRecordRepository(sqlite_session)
    parent = _record(sqlite_session, title="Parent")
    assert parent.id is not None
    for title, key in (("third", "c"), ("first", "a"), ("second", "b0")):
        child = Record(title=title)
        child.place_under(parent.id, ChildType.PART_OF, key)
        sqlite_session.add(child)
    sqlite_session.flush()

    children = repository.children_of(parent.id)

    assert [child.title for child in children] == ["first", "second", "third"]
    assert repository.last_child_order_key(parent.id) == "c"
    assert repository.last_child_order_key(parent.id + 100) is None


def test_pending_embeddings_and_invalidation(sqlite_session: Session) -> None:
    repository = SqlAlchemyRecordRepository(sqlite_session)
    embedded = _record(sqlite_session, title="done", text_embedding=[1.0, 0.0])
    pending = _record(sqlite_session, title="todo")
    assert embedded.id is not None

    assert [record.title for record in repository.pending_embeddings()] == ["todo"]
    assert repository.invalidate_embeddings([embedded.id, embedded.id, 999]) == 1
    sqlite_session.flush()

    assert [record.id for record in repository.pending_embeddings()] == [embedded.id, pending.id]
    assert len(repository.pending_embeddings(limit=1)) == 1


def test_repoint_external_ids(sqlite_session: Session) -> None:
    repository = SqlAlchemyRecordRepository(sqlite_session)
    insert = RecordInsert(source=IntegrationSource.AIRTABLE, title="x")
    source = repository.upsert_by_natural_key(
        RecordKey(IntegrationSource.AIRTABLE, "airtable_extracts", "rec1"), insert, now=NOW
    )
    target = _record(sqlite_session, title="target")
    assert target.id is not None

    moved = repository.repoint_external_ids(source.id, target.id)
    again = repository.upsert_by_natural_key(
        RecordKey(IntegrationSource.AIRTABLE, "airtable_extracts", "rec1"), insert, now=LATER
    )

    assert moved == 1
    assert again.id == target.id
    assert again.created is False


def test_index_entry_upsert_is_keyed_by_type_name_and_sense(sqlite_session: Session) -> None:
    repository = SqlAlchemyIndexEntryRepository(sqlite_session)
    person = IndexEntryInsert(main_type=IndexMainType.ENTITY, name="Mercury", sense="planet")
    element = IndexEntryInsert(main_type=IndexMainType.ENTITY, name="Mercury", sense="element")
    category = IndexEntryInsert(main_type=IndexMainType.CATEGORY, name="Mercury")

    first = repository.upsert_by_natural_key(person, now=NOW)
    repeat = repository.upsert_by_natural_key(person, now=LATER)
    second = repository.upsert_by_natural_key(element, now=NOW)
    third = repository.upsert_by_natural_key(category, now=NOW)

    assert first.created is True
    assert repeat.id == first.id
    assert repeat.created is False
    assert len({first.id, second.id, third.id}) == 3
    entry = repository.get(third.id)
    assert entry is not None
    assert entry.sense == ""


def test_media_upsert_and_ownership(sqlite_session: Session) -> None:
    repository = SqlAlchemyMediaRepository(sqlite_session)
    owner = _record(sqlite_session, title="owner")
    other = _record(sqlite_session, title="other")
    assert owner.id is not None
    assert other.id is not None
    insert = MediaInsert(url="https://cdn.example/a.png", media_type=MediaType.IMAGE)

    created = repository.upsert_by_natural_key(insert, now=NOW)
    repeated = repository.upsert_by_natural_key(insert, now=LATER)

    assert created.created is True
    assert repeated.id == created.id
    assert repeated.created is False
    assert repository.assign_owner(created.id, owner.id) is True
    assert repository.assign_owner(created.id, owner.id) is False
    assert repository.reassign_owner(owner.id, other.id) == 1
    assert [media.id for media in repository.for_record(other.id)] == [created.id]
    assert repository.for_record(owner.id) == []


def test_links_and_index_assignments_are_deduplicated(sqlite_session: Session) -> None:
    links = SqlAlchemyLinkRepository(sqlite_session)
    assignments = SqlAlchemyRecordIndexEntryRepository(sqlite_session)
    predicates = SqlAlchemyPredicateRepository(sqlite_session)
    entries = SqlAlchemyIndexEntryRepository(sqlite_session)
    source = _record(sqlite_session, title="source")
    target = _record(sqlite_session, title="target")
    assert source.id is not None
    assert target.id is not None
    quotes = predicates.id_for("quotes")
    entry = entries.upsert_by_natural_key(
        IndexEntryInsert(main_type=IndexMainType.CATEGORY, name="history"), now=NOW
    )

    assert links.add_if_absent(source.id, target.id, quotes) is True
    assert links.add_if_absent(source.id, target.id, quotes) is False
    assert links.exists(source.id, target.id, quotes)
    assert [link.source_id for link in links.touching(target.id)] == [source.id]
    assert assignments.add_if_absent(source.id, entry.id, IndexRole.TAG) is True
    assert assignments.add_if_absent(source.id, entry.id, IndexRole.TAG) is False
    assert assignments.add_if_absent(source.id, entry.id, IndexRole.CREATOR) is True
    assert len(assignments.for_record(source.id)) == 2


def test_predicates_are_seeded_on_first_use(sqlite_session: Session) -> None:
    repository = SqlAlchemyPredicateRepository(sqlite_session)

    quotes = repository.id_for("quotes")
    quoted_in = repository.id_for("quoted_in")
    fresh = SqlAlchemyPredicateRepository(sqlite_session)

    assert quotes != quoted_in
    assert fresh.id_for("quotes") == quotes
    predicate = repository.get(quoted_in)
    assert predicate is not None
    assert predicate.canonical is False
    assert predicate.inverse_slug == "quotes"
    assert len({fresh.id_for(spec.slug) for spec in PREDICATES}) == len(PREDICATES)


def test_staging_listing_skips_deleted_and_preserves_requested_order(
    sqlite_session: Session,
) -> None:
    repository = SqlAlchemyStagingRepository(sqlite_session)
    for external_id in ("a", "b", "c"):
        repository.add(ReadwiseDocument(external_id=external_id, title=external_id))
    repository.add(ReadwiseDocument(external_id="gone", title="gone", deleted_at=NOW))
    sqlite_session.flush()

    assert list(repository.unmapped_ids(ReadwiseDocument)) == ["a", "b", "c"]
    rows = repository.get_many(ReadwiseDocument, ["c", "missing", "a"])
    assert [row.external_id for row in rows] == ["c", "a"]

    first = repository.get(ReadwiseDocument, "a")
    assert first is not None
    repository.write_back(first, 42)
    sqlite_session.flush()

    assert list(repository.mapped_ids(ReadwiseDocument)) == ["a"]
    assert list(repository.unmapped_ids(ReadwiseDocument)) == ["b", "c"]
    assert repository.canonical_id_for(ReadwiseDocument, "a") == 42
    assert repository.canonical_id_for(ReadwiseDocument, "missing") is None
    assert repository.get_many(ReadwiseDocument, []) == []


def test_staging_repoint_only_touches_tables_of_that_kind(sqlite_session: Session) -> None:
    repository = SqlAlchemyStagingRepository(sqlite_session)
    repository.add(TwitterTweet(external_id="t1", text="tweet", canonical_id=5))
    repository.add(ReadwiseDocument(external_id="d1", title="doc", canonical_id=5))
    repository.add(TwitterMedia(external_id="m1", url="https://m", canonical_id=5))
    sqlite_session.flush()

    moved = repository.repoint(CanonicalKind.RECORD, 5, 9)
    sqlite_session.expire_all()

    assert moved == 2
    assert repository.canonical_id_for(TwitterTweet, "t1") == 9
    assert repository.canonical_id_for(ReadwiseDocument, "d1") == 9
    assert repository.canonical_id_for(TwitterMedia, "m1") == 5
