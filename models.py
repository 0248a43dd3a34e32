"""Shared typed models for the harvesting and enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

DEFAULT_CATEGORIES: tuple[str, ...] = ("cs.CL", "cs.AI", "cs.LG", "cs.MA")


@dataclass(frozen=True, slots=True)
class Record:
    """Normalized paper record used across harvesting and enrichment."""

    id: int
    title: str
    summary: str
    authors: tuple[str, ...]
    published: datetime
    link: str


class LinkType(Enum):
    """Classification of an Atom ``link`` element by its ``type`` attribute."""

    HOME = "text/html"
    PDF = "application/pdf"
    UNKNOWN = "unknown"

    @classmethod
    def from_mime(cls, mime: str | None) -> LinkType | None:
        if mime is None:
            return None
        for member in (cls.HOME, cls.PDF):
            if member.value == mime.strip():
                return member
        return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class RawAuthor:
    name: str


@dataclass(frozen=True, slots=True)
class RawLink:
    href: str
    link_type: LinkType | None


@dataclass(frozen=True, slots=True)
class RawEntry:
    """One ``entry`` element as decoded from the feed, before normalization."""

    title: str
    summary: str
    published: str
    authors: tuple[RawAuthor, ...]
    links: tuple[RawLink, ...]


@dataclass(frozen=True, slots=True)
class RawDocument:
    entries: tuple[RawEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class QueryParameters:
    """Search configuration for one harvest run."""

    categories: tuple[str, ...]
    date_offset: int
    page_size: int
    max_pages: int

    def __post_init__(self) -> None:
        if not self.categories:
            raise ValueError("QueryParameters.categories must not be empty")
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        if self.max_pages < 0:
            raise ValueError(f"max_pages must not be negative, got {self.max_pages}")
        if self.date_offset < 0:
            raise ValueError(f"date_offset must not be negative, got {self.date_offset}")

    @classmethod
    def default(cls) -> QueryParameters:
        return cls(categories=DEFAULT_CATEGORIES, date_offset=1, page_size=50, max_pages=10)
