"""Peak detection with event correlation.

Finds local maxima in each term's series that stand well above the series
mean, then asks an EventSearch for real-world events near each peak date.
Lookups run concurrently under a small semaphore and each carries a timeout;
a failed or slow lookup yields a peak with no event instead of an error.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime

import numpy as np

from trendarc.config import settings
from trendarc.engine.series import SeriesLike, term_values, to_frame
from trendarc.peaks.events import CandidateEvent, Citation, EventCitation, EventSearch

logger = logging.getLogger(__name__)


@dataclass
class Peak:
    date: str
    value: float


@dataclass
class PeakEvent:
    """A peak in one term's series with its best explanatory event.

    Attributes:
        date: Date of the peak point
        value: Interest at the peak
        term: Term whose series peaked
        event: Top-ranked candidate event, or None
        confidence: 90 verified / 75 high / 50 other / 30 no event
        citations: One per event URL
    """

    date: str
    value: float
    term: str
    event: CandidateEvent | None = None
    confidence: int = 30
    citations: list[Citation] = field(default_factory=list)


def find_peaks(values: list[float] | np.ndarray, dates: list[str], min_prominence: float = 20.0) -> list[Peak]:
    """Interior points above both neighbors and the prominence threshold.

    A point at index i (0 < i < n-1) is a peak when it is strictly greater
    than both neighbors, at least mean(values) + min_prominence, and at least
    1.2 × the smaller neighbor.

    Example:
        >>> find_peaks([10, 10, 80, 10, 10], ["d1", "d2", "d3", "d4", "d5"])
        [Peak(date='d3', value=80.0)]
    """
    arr = np.asarray(values, dtype=float)
    if len(arr) < 3:
        return []

    threshold = float(arr.mean()) + min_prominence
    peaks: list[Peak] = []
    for i in range(1, len(arr) - 1):
        current, prev, nxt = arr[i], arr[i - 1], arr[i + 1]
        if current > prev and current > nxt and current >= threshold:
            if current >= min(prev, nxt) * 1.2:
                peaks.append(Peak(date=str(dates[i]), value=float(current)))
    return peaks


def event_confidence(event: CandidateEvent | None) -> int:
    if event is None:
        return 30
    if event.verified:
        return 90
    if event.confidence == "high":
        return 75
    return 50


def build_citations(event: CandidateEvent | None) -> list[Citation]:
    if event is None:
        return []
    return [Citation(title=event.title, url=url, source=event.source) for url in event.urls]


async def _lookup_event(
    event_search: EventSearch,
    peak: Peak,
    term: str,
    window_days: int,
    timeout: float,
    semaphore: asyncio.Semaphore,
) -> CandidateEvent | None:
    async with semaphore:
        try:
            events = await asyncio.wait_for(
                event_search.search(peak.date, [term], window_days), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Event lookup timed out for %s on %s", term, peak.date)
            return None
        except Exception as e:
            logger.warning("Event lookup failed for %s on %s: %s", term, peak.date, e)
            return None
    return events[0] if events else None


async def detect_peaks_with_events(
    series: SeriesLike,
    terms: list[str],
    event_search: EventSearch,
    min_prominence: float | None = None,
    window_days: int | None = None,
    timeout: float | None = None,
    concurrency: int | None = None,
) -> list[PeakEvent]:
    """Detect peaks for every term and attach the best nearby event.

    Args:
        series: Trend series with a ``date`` column and one column per term
        terms: Terms to scan
        event_search: Collaborator returning candidate events best-first
        min_prominence: Points above the mean required (default from settings)
        window_days: ± days searched around each peak (default from settings)
        timeout: Per-lookup timeout in seconds (default from settings)
        concurrency: Max simultaneous lookups (default from settings)

    Returns:
        PeakEvents across all terms, sorted by value descending
    """
    min_prominence = settings.peak_min_prominence if min_prominence is None else min_prominence
    window_days = settings.event_window_days if window_days is None else window_days
    timeout = timeout or settings.event_lookup_timeout
    semaphore = asyncio.Semaphore(concurrency or settings.event_concurrency)

    frame = to_frame(series)
    if frame.empty:
        return []
    dates = [str(d) for d in frame["date"]] if "date" in frame.columns else [str(i) for i in range(len(frame))]

    jobs: list[tuple[str, Peak]] = []
    for term in terms:
        for peak in find_peaks(term_values(frame, term), dates, min_prominence):
            jobs.append((term, peak))

    logger.info("Found %d peaks across %d terms", len(jobs), len(terms))

    events = await asyncio.gather(*(
        _lookup_event(event_search, peak, term, window_days, timeout, semaphore)
        for term, peak in jobs
    ))

    results = [
        PeakEvent(
            date=peak.date,
            value=peak.value,
            term=term,
            event=event,
            confidence=event_confidence(event),
            citations=build_citations(event),
        )
        for (term, peak), event in zip(jobs, events)
    ]
    results.sort(key=lambda p: p.value, reverse=True)
    return results


async def get_event_citations(
    event_search: EventSearch,
    target_date: date | datetime | str,
    term: str,
    window_days: int = 7,
) -> list[EventCitation]:
    """First-URL citation for every candidate event near a date ([] on failure)."""
    try:
        events = await event_search.search(target_date, [term], window_days)
    except Exception as e:
        logger.error("Error getting citations for %s: %s", term, e)
        return []

    return [
        EventCitation(
            title=event.title,
            url=event.urls[0] if event.urls else "",
            source=event.source,
            verified=event.verified,
        )
        for event in events
    ]
