"""Candidate events and the event-search capability used to explain peaks."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Protocol

EventConfidence = str  # "high" | "medium" | "low"


@dataclass
class CandidateEvent:
    """A real-world event that may explain a spike in interest.

    Attributes:
        date: ISO date of the event (YYYY-MM-DD)
        title: Headline
        description: Longer text (may repeat the title)
        confidence: "high", "medium" or "low"
        sources: Names of the sources that reported it
        urls: Article links
        verified: True when confirmed by more than one independent source
        category: Optional topical category
    """

    date: str
    title: str
    description: str = ""
    confidence: EventConfidence = "low"
    sources: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    verified: bool = False
    category: str | None = None

    @property
    def source(self) -> str:
        return ", ".join(self.sources)


@dataclass
class Citation:
    title: str
    url: str
    source: str


@dataclass
class EventCitation(Citation):
    verified: bool = False


class EventSearch(Protocol):
    """Searches for candidate events near a date.

    Implementations return candidates best-first and may raise on failure;
    callers map failures to "no event".
    """

    async def search(
        self,
        target_date: date | datetime | str,
        keywords: list[str],
        window_days: int = 7,
    ) -> list[CandidateEvent]: ...


class NullEventSearch:
    """Event search that never finds anything (offline runs)."""

    async def search(
        self,
        target_date: date | datetime | str,
        keywords: list[str],
        window_days: int = 7,
    ) -> list[CandidateEvent]:
        return []
