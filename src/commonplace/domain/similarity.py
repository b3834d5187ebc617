"""Duplicate candidate detection and seriation over canonical records."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from itertools import combinations
from typing import TYPE_CHECKING, Final, Protocol

import numpy as np

from commonplace.config.similarity import DuplicateThresholds

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from commonplace.domain.model import Record

COMPARABLE_TEXT_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "summary",
    "content",
    "notes",
    "media_caption",
)

_WORD_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^\W_]+")
_THRESHOLD_TOLERANCE: Final[float] = 1e-9


class Embedded(Protocol):
    @property
    def text_embedding(self) -> Sequence[float] | None: ...


def cosine_similarity(first: Sequence[float], second: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0 for mismatched or zero vectors."""

    if len(first) != len(second) or len(first) == 0:
        return 0.0
    vec1 = np.asarray(first, dtype=np.float64)
    vec2 = np.asarray(second, dtype=np.float64)
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def trigrams(text: str) -> frozenset[str]:
    """Trigram set of ``text`` as PostgreSQL's pg_trgm builds it."""

    grams: set[str] = set()
    for word in _WORD_PATTERN.findall(text.lower()):
        padded = f"  {word} "
        grams.update(padded[i : i + 3] for i in range(len(padded) - 2))
    return frozenset(grams)


def trigram_similarity(first: str, second: str) -> float:
    first_grams = trigrams(first)
    second_grams = trigrams(second)
    if not first_grams or not second_grams:
        return 0.0
    return len(first_grams & second_grams) / len(first_grams | second_grams)


def trigram_distance(first: str, second: str) -> float:
    """``1 - similarity``; lower means more alike (pg_trgm's ``<->``)."""

    return 1.0 - trigram_similarity(first, second)


def _at_least(value: float, threshold: float) -> bool:
    return value >= threshold or math.isclose(value, threshold, rel_tol=_THRESHOLD_TOLERANCE)


def _at_most(value: float, threshold: float) -> bool:
    return value <= threshold or math.isclose(value, threshold, rel_tol=_THRESHOLD_TOLERANCE)


@dataclass(frozen=True, slots=True)
class DuplicateCandidate:
    record_id: int
    candidate_id: int
    embedding_similarity: float | None
    trigram_distance: float | None
    matched_field: str | None = None
    same_url: bool = False

    def rank(self) -> tuple[bool, float, float]:
        """Sort key: best candidates sort first."""

        similarity = self.embedding_similarity if self.embedding_similarity is not None else -1.0
        distance = self.trigram_distance if self.trigram_distance is not None else 1.0
        return (not self.same_url, -similarity, distance)


def _best_text_distance(first: Record, second: Record) -> tuple[float | None, str | None]:
    best: float | None = None
    best_field: str | None = None
    for name in COMPARABLE_TEXT_FIELDS:
        left = getattr(first, name)
        right = getattr(second, name)
        if not left or not right:
            continue
        distance = trigram_distance(left, right)
        if best is None or distance < best:
            best, best_field = distance, name
    return best, best_field


def compare_records(
    first: Record,
    second: Record,
    thresholds: DuplicateThresholds | None = None,
) -> DuplicateCandidate | None:
    """Return a candidate when the pair looks like a duplicate, else ``None``."""

    limits = thresholds or DuplicateThresholds()
    if first.id is None or second.id is None or first.id == second.id:
        return None

    similarity: float | None = None
    if first.text_embedding is not None and second.text_embedding is not None:
        similarity = cosine_similarity(first.text_embedding, second.text_embedding)
    distance, matched_field = _best_text_distance(first, second)
    same_url = bool(first.url) and first.url == second.url

    flagged = (
        same_url
        or (similarity is not None and _at_least(similarity, limits.embedding_similarity))
        or (distance is not None and _at_most(distance, limits.trigram_distance))
    )
    if not flagged:
        return None
    return DuplicateCandidate(
        record_id=first.id,
        candidate_id=second.id,
        embedding_similarity=similarity,
        trigram_distance=distance,
        matched_field=matched_field,
        same_url=same_url,
    )


def find_duplicate_candidates(
    record: Record,
    others: Iterable[Record],
    thresholds: DuplicateThresholds | None = None,
    *,
    limit: int | None = None,
) -> list[DuplicateCandidate]:
    candidates = [
        candidate
        for other in others
        if (candidate := compare_records(record, other, thresholds)) is not None
    ]
    candidates.sort(key=DuplicateCandidate.rank)
    return candidates[:limit] if limit is not None else candidates


def scan_duplicate_pairs(
    records: Sequence[Record],
    thresholds: DuplicateThresholds | None = None,
) -> list[DuplicateCandidate]:
    """Flag every duplicate pair once, lower record id first."""

    ordered = sorted((record for record in records if record.id is not None), key=_record_id)
    pairs = [
        candidate
        for first, second in combinations(ordered, 2)
        if (candidate := compare_records(first, second, thresholds)) is not None
    ]
    pairs.sort(key=DuplicateCandidate.rank)
    return pairs


def _record_id(record: Record) -> int:
    return record.id or 0


def seriate[T: Embedded](items: Sequence[T]) -> list[T]:
    """Reorder ``items`` into a greedy nearest-neighbour chain by embedding.

    Starts from the first item. Items without an embedding, and everything left
    once the chain reaches one, keep their original relative order at the end.
    """

    if len(items) <= 1:
        return list(items)

    ordered = [items[0]]
    remaining = list(items[1:])
    while remaining:
        anchor = ordered[-1].text_embedding
        if anchor is None:
            break
        best_index: int | None = None
        best_similarity = -math.inf
        for index, item in enumerate(remaining):
            embedding = item.text_embedding
            if embedding is None:
                continue
            similarity = cosine_similarity(anchor, embedding)
            if similarity > best_similarity:
                best_index, best_similarity = index, similarity
        if best_index is None:
            break
        ordered.append(remaining.pop(best_index))
    ordered.extend(remaining)
    return ordered
