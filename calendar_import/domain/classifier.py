"""Keyword and known-location classification of candidate events.

Heuristics, not guarantees: an event is "relevant" when its text mentions a
relevance keyword or its location looks like a known venue, and "private"
when its text mentions a personal keyword. Relevant, non-private events are
pre-selected for import. All tables are data (see
``data/classifier_keywords.yaml``) so they can be extended without code
changes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS_PATH = Path(__file__).resolve().parent.parent / "data" / "classifier_keywords.yaml"


@dataclass(frozen=True)
class KnownLocation:
    """A registered venue; matched by name, address or any declared pattern."""

    name: str
    address: Optional[str] = None
    location_patterns: tuple[str, ...] = ()

    def matches(self, location: str) -> bool:
        """True when ``location`` (already lower-cased) contains any identifying text."""
        candidates = [self.name, self.address or "", *self.location_patterns]
        return any(c and c.lower() in location for c in candidates)


@dataclass(frozen=True)
class KeywordTables:
    """Keyword lists driving the classifier."""

    relevance_keywords: tuple[str, ...] = ()
    private_keywords: tuple[str, ...] = ()
    venue_keywords: tuple[str, ...] = ()
    tag_keywords: tuple[tuple[str, tuple[str, ...]], ...] = ()
    known_locations: tuple[KnownLocation, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeywordTables:
        """Build tables from a mapping as loaded from YAML.

        Raises:
            ConfigurationError: If a section has the wrong shape
        """

        def _words(key: str) -> tuple[str, ...]:
            raw = data.get(key) or []
            if not isinstance(raw, list):
                raise ConfigurationError(f"Keyword section {key!r} must be a list")
            return tuple(str(w).lower() for w in raw if str(w).strip())

        raw_tags = data.get("tag_keywords") or {}
        if not isinstance(raw_tags, dict):
            raise ConfigurationError("Keyword section 'tag_keywords' must be a mapping")
        tags = tuple(
            (str(tag), tuple(str(w).lower() for w in (words or [])))
            for tag, words in raw_tags.items()
        )

        raw_locations = data.get("known_locations") or []
        if not isinstance(raw_locations, list):
            raise ConfigurationError("Keyword section 'known_locations' must be a list")
        locations = []
        for entry in raw_locations:
            if not isinstance(entry, dict) or not entry.get("name"):
                raise ConfigurationError(f"Known location entry needs a name: {entry!r}")
            locations.append(
                KnownLocation(
                    name=str(entry["name"]),
                    address=entry.get("address"),
                    location_patterns=tuple(str(p) for p in entry.get("location_patterns") or []),
                )
            )

        return cls(
            relevance_keywords=_words("relevance_keywords"),
            private_keywords=_words("private_keywords"),
            venue_keywords=_words("venue_keywords"),
            tag_keywords=tags,
            known_locations=tuple(locations),
        )

    def with_known_locations(self, locations: Iterable[KnownLocation]) -> KeywordTables:
        """Copy of these tables with ``locations`` appended to the registry."""
        return KeywordTables(
            relevance_keywords=self.relevance_keywords,
            private_keywords=self.private_keywords,
            venue_keywords=self.venue_keywords,
            tag_keywords=self.tag_keywords,
            known_locations=self.known_locations + tuple(locations),
        )


def load_keyword_tables(path: Union[str, Path, None] = None) -> KeywordTables:
    """Load keyword tables from YAML, defaulting to the bundled file.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    source = Path(path) if path else DEFAULT_KEYWORDS_PATH
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read keyword tables {source}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse keyword tables {source}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Keyword tables {source} must contain a mapping")

    tables = KeywordTables.from_dict(data)
    logger.debug(
        "Loaded keyword tables from %s: %d relevance, %d private, %d tags, %d locations",
        source,
        len(tables.relevance_keywords),
        len(tables.private_keywords),
        len(tables.tag_keywords),
        len(tables.known_locations),
    )
    return tables


@dataclass(frozen=True)
class Classification:
    is_relevant: bool
    is_private: bool
    suggested_tags: list[str] = field(default_factory=list)
    selected: bool = False


class EventClassifier:
    """Pure, deterministic classifier over (title, description, location)."""

    def __init__(self, tables: Optional[KeywordTables] = None) -> None:
        self.tables = tables if tables is not None else load_keyword_tables()

    def classify(
        self,
        title: Optional[str],
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Classification:
        content = f"{title or ''} {description or ''}".lower()
        where = (location or "").lower().strip()

        is_relevant = _contains_any(content, self.tables.relevance_keywords) or self.is_known_venue(where)
        is_private = _contains_any(content, self.tables.private_keywords)
        tags = self.suggest_tags(content)

        return Classification(
            is_relevant=is_relevant,
            is_private=is_private,
            suggested_tags=tags,
            selected=is_relevant and not is_private,
        )

    def is_known_venue(self, location: str) -> bool:
        """Location matches the registry or contains a venue keyword."""
        location = location.lower().strip()
        if not location:
            return False
        if any(known.matches(location) for known in self.tables.known_locations):
            return True
        return _contains_any(location, self.tables.venue_keywords)

    def suggest_tags(self, content: str) -> list[str]:
        content = content.lower()
        tags: list[str] = []
        for tag, words in self.tables.tag_keywords:
            if tag not in tags and _contains_any(content, words):
                tags.append(tag)
        return tags


def _contains_any(text: str, words: Sequence[str]) -> bool:
    return any(w in text for w in words)
