"""Tests for the verifier wire format and keyword helpers."""

from trendarc.peaks.events import CandidateEvent
from trendarc.verification import (
    ContextualRelevanceResult,
    default_verification_result,
    format_contextual_response,
    is_ambiguous_keyword,
    parse_contextual_response,
    suggest_category,
)


class TestParseContextualResponse:
    """Test parsing the five-line response."""

    def test_full_response(self) -> None:
        """All five fields are read."""
        text = (
            "RELEVANCE: 12\n"
            "INTERPRETATION: apple (fruit)\n"
            "REASONING: The article is about an orchard harvest.\n"
            "CONFIDENCE: 91\n"
            "CONTEXT_MATCH: NO\n"
        )
        result = parse_contextual_response(text)

        assert result.relevance_score == 12
        assert result.interpretation == "apple (fruit)"
        assert result.reasoning == "The article is about an orchard harvest."
        assert result.confidence == 91
        assert result.context_match is False

    def test_value_keeps_later_colons(self) -> None:
        """Only the first colon separates label from value."""
        result = parse_contextual_response("REASONING: Title reads: Apple event at 10:00")
        assert result.reasoning == "Title reads: Apple event at 10:00"

    def test_defaults_for_garbage(self) -> None:
        """Unparseable text yields the parse defaults."""
        result = parse_contextual_response("I am not sure what you mean.")

        assert result.relevance_score == 50
        assert result.interpretation == "Unknown"
        assert result.reasoning == "Could not parse response"
        assert result.confidence == 50
        assert result.context_match is False

    def test_scores_clamped_and_leading_int(self) -> None:
        """Scores keep their leading integer and stay within 0-100."""
        result = parse_contextual_response("RELEVANCE: 150%\nCONFIDENCE: 80 (fairly sure)")
        assert result.relevance_score == 100
        assert result.confidence == 80

        result = parse_contextual_response("RELEVANCE: -5\nCONFIDENCE: high")
        assert result.relevance_score == 0
        assert result.confidence == 50

    def test_context_match_variants(self) -> None:
        """YES and TRUE in any case are a match."""
        assert parse_contextual_response("CONTEXT_MATCH: yes").context_match is True
        assert parse_contextual_response("context_match: True").context_match is True
        assert parse_contextual_response("CONTEXT_MATCH: maybe").context_match is False

    def test_roundtrip_with_format(self) -> None:
        """format_contextual_response output parses back to the same result."""
        original = ContextualRelevanceResult(
            relevance_score=95,
            interpretation="Apple Inc. (technology company)",
            reasoning="Product launch.",
            confidence=90,
            context_match=True,
        )
        assert parse_contextual_response(format_contextual_response(original)) == original


class TestDefaultResult:
    """Test the failure result."""

    def test_values(self) -> None:
        """Failure means neutral scores and no match."""
        result = default_verification_result()
        assert (result.relevance_score, result.confidence) == (50, 50)
        assert result.interpretation == "Unknown"
        assert result.reasoning == "Verification failed"
        assert result.context_match is False


class TestKeywords:
    """Test ambiguity lookup and category suggestion."""

    def test_ambiguous_exact_match(self) -> None:
        """Membership is exact after trimming and lowercasing."""
        assert is_ambiguous_keyword("Apple")
        assert is_ambiguous_keyword("  PYTHON ")
        assert not is_ambiguous_keyword("Apple Watch")
        assert not is_ambiguous_keyword("iPhone")

    def test_suggest_category(self) -> None:
        """Each rule picks its own domain."""
        assert suggest_category("iPhone", "Android") == "technology"
        assert suggest_category("Oranges", "Apples") == "food"
        assert suggest_category("Netflix", "Hulu") == "entertainment"
        assert suggest_category("Messi", "Ronaldo") == "sports"
        assert suggest_category("Dogs", "Cats") == "animals"
        assert suggest_category("Nike vs", "Adidas") == "brands"
        assert suggest_category("Foo", "Bar") is None

    def test_first_rule_wins(self) -> None:
        """Technology is checked before food."""
        assert suggest_category("Java", "Coffee") == "technology"

    def test_candidate_event_source(self) -> None:
        """An event's source string joins its sources."""
        event = CandidateEvent(date="2024-01-01", title="t", sources=["a.com", "b.com"])
        assert event.source == "a.com, b.com"
