"""Verification types and the five-line verifier wire format.

Every verifier answers with exactly five lines:

    RELEVANCE: <0-100>
    INTERPRETATION: <which sense of the keyword the event uses>
    REASONING: <one or two sentences>
    CONFIDENCE: <0-100>
    CONTEXT_MATCH: YES|NO
"""

import re
from dataclasses import dataclass
from datetime import date

from trendarc.engine.numeric import clamp
from trendarc.peaks.events import CandidateEvent

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


@dataclass
class ComparisonContext:
    term_a: str
    term_b: str
    category: str | None = None

    @property
    def terms(self) -> tuple[str, str]:
        return (self.term_a, self.term_b)


@dataclass
class VerificationRequest:
    """Inputs a verifier sees for one (event, keyword, context) triple."""

    event: CandidateEvent
    keyword: str
    context: ComparisonContext
    target_date: date


@dataclass
class ContextualRelevanceResult:
    """How well an event's sense of a keyword fits the comparison.

    Attributes:
        relevance_score: 0-100 fit between the event's sense and the context
        interpretation: Sense of the keyword the event uses
        reasoning: Short justification from the verifier
        confidence: 0-100 certainty of the interpretation
        context_match: True only when the sense is consistent with the context
    """

    relevance_score: int
    interpretation: str
    reasoning: str
    confidence: int
    context_match: bool


@dataclass
class ScoredEvent:
    event: CandidateEvent
    verification: ContextualRelevanceResult


def default_verification_result() -> ContextualRelevanceResult:
    """Result used when a verifier fails or times out."""
    return ContextualRelevanceResult(
        relevance_score=50,
        interpretation="Unknown",
        reasoning="Verification failed",
        confidence=50,
        context_match=False,
    )


def _parse_score(value: str) -> int | None:
    match = _LEADING_INT.match(value)
    if not match:
        return None
    return int(clamp(int(match.group(1))))


def parse_contextual_response(text: str) -> ContextualRelevanceResult:
    """Parse the five-line verifier response.

    Lines are matched by prefix; everything after the first colon is the
    value. Missing or malformed lines keep their defaults. Scores are
    clamped to 0-100 and CONTEXT_MATCH accepts YES/TRUE in any case.

    Example:
        >>> r = parse_contextual_response("RELEVANCE: 12\\nCONTEXT_MATCH: no")
        >>> r.relevance_score, r.context_match
        (12, False)
    """
    relevance = 50
    interpretation = "Unknown"
    reasoning = "Could not parse response"
    confidence = 50
    context_match = False

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if ":" not in line:
            continue
        label, value = line.split(":", 1)
        label = label.strip().upper()
        value = value.strip()

        if label == "RELEVANCE":
            parsed = _parse_score(value)
            if parsed is not None:
                relevance = parsed
        elif label == "INTERPRETATION" and value:
            interpretation = value
        elif label == "REASONING" and value:
            reasoning = value
        elif label == "CONFIDENCE":
            parsed = _parse_score(value)
            if parsed is not None:
                confidence = parsed
        elif label == "CONTEXT_MATCH":
            context_match = value.upper() in {"YES", "TRUE"}

    return ContextualRelevanceResult(
        relevance_score=relevance,
        interpretation=interpretation,
        reasoning=reasoning,
        confidence=confidence,
        context_match=context_match,
    )


def format_contextual_response(result: ContextualRelevanceResult) -> str:
    return "\n".join([
        f"RELEVANCE: {result.relevance_score}",
        f"INTERPRETATION: {result.interpretation}",
        f"REASONING: {result.reasoning}",
        f"CONFIDENCE: {result.confidence}",
        f"CONTEXT_MATCH: {'YES' if result.context_match else 'NO'}",
    ])
