"""Thresholds used when flagging duplicate records."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float
from .errors import ConfigurationError

DEFAULT_EMBEDDING_SIMILARITY = 0.8
DEFAULT_TRIGRAM_DISTANCE = 0.75


@dataclass(frozen=True, slots=True)
class DuplicateThresholds:
    """Pairs are flagged when cosine >= ``embedding_similarity`` or
    trigram distance <= ``trigram_distance`` (both inclusive)."""

    embedding_similarity: float = DEFAULT_EMBEDDING_SIMILARITY
    trigram_distance: float = DEFAULT_TRIGRAM_DISTANCE

    def __post_init__(self) -> None:
        if not -1.0 <= self.embedding_similarity <= 1.0:
            raise ConfigurationError("embedding_similarity must be within [-1, 1]")
        if not 0.0 <= self.trigram_distance <= 1.0:
            raise ConfigurationError("trigram_distance must be within [0, 1]")


def get_duplicate_thresholds() -> DuplicateThresholds:
    return DuplicateThresholds(
        embedding_similarity=env_float(
            "COMMONPLACE_EMBEDDING_SIMILARITY", DEFAULT_EMBEDDING_SIMILARITY
        ),
        trigram_distance=env_float("COMMONPLACE_TRIGRAM_DISTANCE", DEFAULT_TRIGRAM_DISTANCE),
    )
