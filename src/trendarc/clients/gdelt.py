"""GDELT DOC 2.0 news search, used to explain trend peaks.

GDELT indexes worldwide news coverage and needs no API key. Articles found
around a peak date are clustered into candidate events: articles published
within a day of each other whose titles share enough significant words are
treated as coverage of the same event. An event reported by two or more
distinct domains is marked verified.

Usage:
    async with GdeltEventSearch() as events:
        candidates = await events.search("2024-09-09", ["iPhone"], window_days=7)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from trendarc.clients.base import BaseAsyncClient
from trendarc.config import settings
from trendarc.peaks.events import CandidateEvent

logger = logging.getLogger(__name__)

_GDELT_DATE_FORMAT = "%Y%m%d"
_CONFIDENCE_RANK = {"high": 3, "medium": 2, "low": 1}
_TITLE_SIMILARITY = 0.3
_MIN_WORD_LENGTH = 5


@dataclass
class GdeltArticle:
    title: str
    url: str
    domain: str
    published: date
    language: str = "en"
    country: str = "Unknown"


def coerce_date(value: date | datetime | str) -> date:
    """Accept a date, datetime or ISO string (YYYY-MM-DD...)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def build_query(keywords: list[str]) -> str:
    """GDELT query string: phrases quoted, alternatives OR-ed.

    Example:
        >>> build_query(["call-of-duty", "fortnite"])
        '("call of duty" OR fortnite)'
    """
    parts = []
    for keyword in keywords:
        cleaned = keyword.replace("-", " ").strip()
        if cleaned:
            parts.append(f'"{cleaned}"' if " " in cleaned else cleaned)
    if len(parts) == 1:
        return parts[0]
    return f"({' OR '.join(parts)})"


class GdeltClient(BaseAsyncClient):
    """GDELT DOC 2.0 API client.

    Args:
        rate_limit: Requests per second (default from settings)
        timeout: Request timeout in seconds
    """

    def __init__(self, rate_limit: int | None = None, timeout: float = 20.0) -> None:
        super().__init__(
            base_url="https://api.gdeltproject.org/api/v2",
            headers={"User-Agent": "TrendArc/0.1"},
            rate_limit=rate_limit or settings.gdelt_rate_limit,
            timeout=timeout,
        )

    async def search_articles(
        self,
        keywords: list[str],
        target_date: date,
        window_days: int = 7,
        max_records: int = 50,
    ) -> list[GdeltArticle]:
        """Articles mentioning the keywords within ± window_days of a date.

        Raises:
            APIProviderError: If the request fails
        """
        start = target_date - timedelta(days=window_days)
        end = target_date + timedelta(days=window_days)
        params = {
            "query": build_query(keywords),
            "mode": "artlist",
            "format": "json",
            "maxrecords": max_records,
            "startdatetime": f"{start.strftime(_GDELT_DATE_FORMAT)}000000",
            "enddatetime": f"{end.strftime(_GDELT_DATE_FORMAT)}000000",
            "sort": "datedesc",
        }
        data = await self.get("/doc/doc", params=params)
        articles = [
            self._parse_article(raw, target_date)
            for raw in data.get("articles") or []
            if raw.get("url")
        ]
        logger.info("GDELT returned %d articles for %s around %s", len(articles), keywords, target_date)
        return articles

    @staticmethod
    def _parse_article(raw: dict[str, Any], fallback_date: date) -> GdeltArticle:
        seen = str(raw.get("seendate") or "")
        try:
            published = datetime.strptime(seen[:8], _GDELT_DATE_FORMAT).date()
        except ValueError:
            published = fallback_date
        domain = str(raw.get("domain") or "").removeprefix("www.") or "unknown"
        return GdeltArticle(
            title=str(raw.get("title") or "Untitled Article"),
            url=str(raw["url"]),
            domain=domain,
            published=published,
            language=str(raw.get("language") or "en"),
            country=str(raw.get("sourcecountry") or "Unknown"),
        )


def _title_words(title: str) -> set[str]:
    return {w for w in title.lower().split() if len(w) >= _MIN_WORD_LENGTH}


def _same_story(a: GdeltArticle, b: GdeltArticle) -> bool:
    if abs((a.published - b.published).days) > 1:
        return False
    words_a, words_b = _title_words(a.title), _title_words(b.title)
    union = words_a | words_b
    if not union:
        return a.title.strip().lower() == b.title.strip().lower()
    return len(words_a & words_b) / len(union) > _TITLE_SIMILARITY


def cluster_articles(articles: list[GdeltArticle]) -> list[CandidateEvent]:
    """Group articles covering the same story into ranked candidate events.

    Ranking: verified first, then confidence, then number of articles.
    """
    groups: list[list[GdeltArticle]] = []
    for article in articles:
        for group in groups:
            if _same_story(article, group[0]):
                group.append(article)
                break
        else:
            groups.append([article])

    events = []
    for group in groups:
        first = group[0]
        domains = list(dict.fromkeys(a.domain for a in group))
        urls = list(dict.fromkeys(a.url for a in group))
        if len(group) >= 3:
            confidence = "high"
        elif len(group) == 2:
            confidence = "medium"
        else:
            confidence = "low"
        events.append(CandidateEvent(
            date=first.published.isoformat(),
            title=first.title,
            description=max((a.title for a in group), key=len),
            confidence=confidence,
            sources=domains,
            urls=urls,
            verified=len(domains) >= 2,
        ))

    events.sort(key=lambda e: (not e.verified, -_CONFIDENCE_RANK[e.confidence], -len(e.urls)))
    return events


class GdeltEventSearch:
    """EventSearch backed by GDELT news coverage.

    Must be entered with ``async with`` before searching.

    Args:
        client: GdeltClient to use (a default one is created if omitted)
    """

    def __init__(self, client: GdeltClient | None = None) -> None:
        self._client = client or GdeltClient()

    async def __aenter__(self) -> "GdeltEventSearch":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._client.__aexit__(exc_type, exc_val, exc_tb)

    async def search(
        self,
        target_date: date | datetime | str,
        keywords: list[str],
        window_days: int = 7,
    ) -> list[CandidateEvent]:
        articles = await self._client.search_articles(keywords, coerce_date(target_date), window_days)
        return cluster_articles(articles)
