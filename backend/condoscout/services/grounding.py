"""
Grounding normalizer.

Turns the chat service's grounding chunks into the place cards shown under a
model reply. Chunks arrive as plain mappings, either from the SDK's
``model_dump()`` (snake_case keys) or from raw REST JSON (camelCase keys), so
every optional field is looked up through an ordered list of accepted names.

Only map chunks are considered. A chunk without a title or without any URI is
dropped without error: partial grounding data is normal provider behaviour.
Output keeps input order, first occurrence wins on duplicate titles.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from condoscout.models.chat import PlaceRecord

logger = structlog.get_logger(__name__)

# Accepted spellings per field, most preferred first
URI_FIELDS: tuple[str, ...] = ("uri", "google_maps_uri", "googleMapsUri")
PLACE_ID_FIELDS: tuple[str, ...] = ("place_id", "placeId")
ANSWER_SOURCES_FIELDS: tuple[str, ...] = ("place_answer_sources", "placeAnswerSources")
REVIEW_SNIPPETS_FIELDS: tuple[str, ...] = ("review_snippets", "reviewSnippets")
SNIPPET_TEXT_FIELDS: tuple[str, ...] = ("content", "review")


def _first_present(data: Mapping[str, Any], fields: Sequence[str]) -> Any:
    """Return the first non-empty value among `fields`, or None."""
    for name in fields:
        value = data.get(name)
        if value:
            return value
    return None


def _as_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def resolve_place_uri(maps: Mapping[str, Any]) -> str | None:
    """Pick the canonical place link: `uri` first, then the Google Maps URI variants."""
    return _as_text(_first_present(maps, URI_FIELDS))


def first_review_snippet(maps: Mapping[str, Any]) -> str | None:
    """Text of the first review snippet attached to a place, if any."""
    sources = _first_present(maps, ANSWER_SOURCES_FIELDS)
    if not isinstance(sources, Mapping):
        return None
    snippets = _first_present(sources, REVIEW_SNIPPETS_FIELDS)
    if not isinstance(snippets, Sequence) or isinstance(snippets, str) or not snippets:
        return None
    first = snippets[0]
    if not isinstance(first, Mapping):
        return None
    return _as_text(_first_present(first, SNIPPET_TEXT_FIELDS))


def to_place_record(chunk: Any) -> PlaceRecord | None:
    """Map one grounding chunk to a PlaceRecord, or None when it is not a usable place."""
    if not isinstance(chunk, Mapping):
        return None
    maps = chunk.get("maps")
    if not isinstance(maps, Mapping):
        return None

    title = _as_text(maps.get("title"))
    uri = resolve_place_uri(maps)
    if title is None or uri is None:
        return None

    return PlaceRecord(
        title=title,
        uri=uri,
        place_id=_as_text(_first_present(maps, PLACE_ID_FIELDS)),
        address=_as_text(maps.get("address")),
        description=first_review_snippet(maps),
    )


def dedupe_by_title(places: Iterable[PlaceRecord]) -> list[PlaceRecord]:
    """Keep the first record for each exact (case-sensitive) title."""
    seen: set[str] = set()
    unique: list[PlaceRecord] = []
    for place in places:
        if place.title in seen:
            continue
        seen.add(place.title)
        unique.append(place)
    return unique


def normalize_grounding_chunks(chunks: Iterable[Any] | None) -> list[PlaceRecord]:
    """
    Convert raw grounding chunks into de-duplicated place records.

    Args:
        chunks: Grounding chunks from the provider response. None or empty
            yields an empty list.

    Returns:
        Place records in first-occurrence order, unique by title.
    """
    if not chunks:
        return []

    places: list[PlaceRecord] = []
    dropped = 0
    for chunk in chunks:
        record = to_place_record(chunk)
        if record is None:
            dropped += 1
            continue
        places.append(record)

    unique = dedupe_by_title(places)
    if dropped or len(unique) != len(places):
        logger.debug(
            "grounding_chunks_filtered",
            dropped=dropped,
            duplicates=len(places) - len(unique),
            kept=len(unique),
        )
    return unique
