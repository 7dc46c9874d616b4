"""Context-aware verification of peak events.

An event found near a peak may use a different sense of an ambiguous keyword
than the comparison does ("Apple" the fruit on an iPhone vs Android page).
These helpers ask a Verifier which sense the event uses, parse its answer,
and keep only events consistent with the comparison.

Usage:
    context = ComparisonContext("iPhone", "Android", "technology")
    result = await verify_event_with_context(event, "Apple", context, date(2024, 9, 9))
    if result.context_match:
        ...
"""

import asyncio
import logging
from datetime import date, datetime

from trendarc.clients.gdelt import coerce_date
from trendarc.config import settings
from trendarc.peaks.events import CandidateEvent
from trendarc.verification.keywords import is_ambiguous_keyword, suggest_category
from trendarc.verification.models import (
    ComparisonContext,
    ContextualRelevanceResult,
    ScoredEvent,
    VerificationRequest,
    default_verification_result,
    parse_contextual_response,
)
from trendarc.verification.verifiers import Verifier, build_verifier

logger = logging.getLogger(__name__)

_BATCH_PAUSE = 0.5  # seconds

__all__ = [
    "batch_verify_with_context",
    "filter_by_context_match",
    "get_interpretation_summary",
    "is_ambiguous_keyword",
    "suggest_category",
    "verify_event_with_context",
]


async def verify_event_with_context(
    event: CandidateEvent,
    keyword: str,
    context: ComparisonContext,
    target_date: date | datetime | str,
    verifier: Verifier | None = None,
    timeout: float | None = None,
) -> ContextualRelevanceResult:
    """Score how well an event's sense of ``keyword`` fits the comparison.

    Args:
        event: Candidate event found near the peak
        keyword: Possibly ambiguous keyword, e.g. "Apple"
        context: The two compared terms and optional category
        target_date: Date of the peak
        verifier: Backend to ask (built from settings if omitted)
        timeout: Seconds before giving up (default from settings)

    Returns:
        Parsed verifier result, or the default result on failure or timeout
    """
    verifier = verifier or build_verifier()
    timeout = timeout or settings.verification_timeout
    try:
        request = VerificationRequest(
            event=event,
            keyword=keyword,
            context=context,
            target_date=coerce_date(target_date),
        )
        text = await asyncio.wait_for(verifier.respond(request), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Verification timed out for %s: %s", keyword, event.title)
        return default_verification_result()
    except Exception as e:
        logger.error("Verification failed for %s: %s", keyword, e)
        return default_verification_result()

    result = parse_contextual_response(text)
    logger.debug(
        "Verified %s in %r: relevance=%d match=%s",
        keyword, event.title, result.relevance_score, result.context_match,
    )
    return result


async def batch_verify_with_context(
    items: list[tuple[CandidateEvent, str, date | datetime | str]],
    context: ComparisonContext,
    verifier: Verifier | None = None,
) -> dict[str, ContextualRelevanceResult]:
    """Verify many (event, keyword, peak date) triples a few at a time.

    Windows of ``settings.verification_concurrency`` run concurrently with a
    short pause between windows.

    Returns:
        Results keyed by ``"{keyword}-{event title}"``
    """
    verifier = verifier or build_verifier()
    results: dict[str, ContextualRelevanceResult] = {}
    batch_size = settings.verification_concurrency

    for start in range(0, len(items), batch_size):
        window = items[start:start + batch_size]
        verified = await asyncio.gather(*(
            verify_event_with_context(event, keyword, context, target_date, verifier)
            for event, keyword, target_date in window
        ))
        for (event, keyword, _), result in zip(window, verified):
            results[f"{keyword}-{event.title}"] = result

        if start + batch_size < len(items):
            await asyncio.sleep(_BATCH_PAUSE)

    return results


def filter_by_context_match(events: list[ScoredEvent], min_relevance: int = 60) -> list[ScoredEvent]:
    return [
        scored for scored in events
        if scored.verification.context_match and scored.verification.relevance_score >= min_relevance
    ]


def get_interpretation_summary(keyword: str, interpretation: str, context: ComparisonContext) -> str:
    """One-sentence explanation of which sense a keyword takes in this comparison.

    Example:
        >>> ctx = ComparisonContext("iPhone", "Android", "technology")
        >>> get_interpretation_summary("Apple", "Apple Inc.", ctx)
        'In the context of comparing "iPhone" vs "Android", "Apple" refers to Apple Inc..'
    """
    return (
        f'In the context of comparing "{context.term_a}" vs "{context.term_b}", '
        f'"{keyword}" refers to {interpretation}.'
    )
