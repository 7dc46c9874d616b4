"""Context-aware disambiguation of events found near trend peaks."""

from trendarc.verification.context import (
    batch_verify_with_context,
    filter_by_context_match,
    get_interpretation_summary,
    verify_event_with_context,
)
from trendarc.verification.keywords import AMBIGUOUS_KEYWORDS, is_ambiguous_keyword, suggest_category
from trendarc.verification.models import (
    ComparisonContext,
    ContextualRelevanceResult,
    ScoredEvent,
    VerificationRequest,
    default_verification_result,
    format_contextual_response,
    parse_contextual_response,
)
from trendarc.verification.verifiers import LLMVerifier, RuleBasedVerifier, Verifier, build_verifier

__all__ = [
    "AMBIGUOUS_KEYWORDS",
    "ComparisonContext",
    "ContextualRelevanceResult",
    "LLMVerifier",
    "RuleBasedVerifier",
    "ScoredEvent",
    "VerificationRequest",
    "Verifier",
    "batch_verify_with_context",
    "build_verifier",
    "default_verification_result",
    "filter_by_context_match",
    "format_contextual_response",
    "get_interpretation_summary",
    "is_ambiguous_keyword",
    "parse_contextual_response",
    "suggest_category",
    "verify_event_with_context",
]
