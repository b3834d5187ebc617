"""Fixed taxonomy of link predicates.

Only canonical predicates are stored on links; the inverse entries exist so
incoming edges can be described from the target's point of view.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .enums import PredicateType


@dataclass(frozen=True, slots=True)
class PredicateSpec:
    slug: str
    name: str
    type: PredicateType
    inverse_slug: str
    canonical: bool


def _pair(
    slug: str,
    name: str,
    inverse_slug: str,
    inverse_name: str,
    type_: PredicateType,
) -> tuple[PredicateSpec, PredicateSpec]:
    return (
        PredicateSpec(slug, name, type_, inverse_slug, canonical=True),
        PredicateSpec(inverse_slug, inverse_name, type_, slug, canonical=False),
    )


PREDICATES: Final[tuple[PredicateSpec, ...]] = (
    *_pair("created_by", "Created by", "creator_of", "Creator of", PredicateType.CREATION),
    *_pair("edited_by", "Edited by", "editor_of", "Editor of", PredicateType.CREATION),
    *_pair(
        "translated_by", "Translated by", "translator_of", "Translator of", PredicateType.CREATION
    ),
    *_pair("via", "Via", "source_for", "Source for", PredicateType.REFERENCE),
    *_pair("contained_by", "Contained by", "contains", "Contains", PredicateType.CONTAINMENT),
    *_pair("quotes", "Quotes", "quoted_in", "Quoted in", PredicateType.REFERENCE),
    *_pair("has_format", "Has format", "format_of", "Format of", PredicateType.FORM),
    *_pair("tagged_with", "Tagged with", "tag_of", "Tag of", PredicateType.DESCRIPTION),
    *_pair("about", "About", "subject_of", "Subject of", PredicateType.DESCRIPTION),
    *_pair("references", "References", "referenced_by", "Referenced by", PredicateType.REFERENCE),
    *_pair(
        "responds_to", "Responds to", "responded_by", "Responded to by", PredicateType.REFERENCE
    ),
    *_pair("counters", "Counters", "countered_by", "Countered by", PredicateType.ASSOCIATION),
    PredicateSpec("related_to", "Related to", PredicateType.ASSOCIATION, "related_to", True),
    PredicateSpec("same_as", "Same as", PredicateType.IDENTITY, "same_as", True),
)

PREDICATES_BY_SLUG: Final[dict[str, PredicateSpec]] = {spec.slug: spec for spec in PREDICATES}


class UnknownPredicateError(KeyError):
    """Raised when a slug is not part of the predicate taxonomy."""


def predicate_spec(slug: str) -> PredicateSpec:
    try:
        return PREDICATES_BY_SLUG[slug]
    except KeyError as exc:
        raise UnknownPredicateError(slug) from exc


def canonical_predicate_spec(slug: str) -> PredicateSpec:
    """Return the canonical predicate for ``slug`` (itself, or its inverse)."""

    spec = predicate_spec(slug)
    if spec.canonical:
        return spec
    return predicate_spec(spec.inverse_slug)
