"""Comparison verdicts: two TrendArc Scores → winner, headline and evidence."""

from dataclasses import dataclass, field

from trendarc.engine.categories import detect_category
from trendarc.engine.numeric import round_half_up
from trendarc.engine.scoring import (
    ComparisonCategory,
    TrendArcScore,
    calculate_trend_arc_score,
    series_source_metrics,
)
from trendarc.engine.series import SeriesLike


@dataclass
class ComparisonVerdict:
    """Outcome of comparing two scored terms.

    Attributes:
        winner: Term with the higher overall score (first term on a tie)
        loser: The other term
        winner_score: Winner's TrendArcScore
        loser_score: Loser's TrendArcScore
        margin: |overall A − overall B|
        confidence: Rounded mean of both scores' confidence
        headline: Margin-tiered one-liner
        recommendation: Category-specific advice
        evidence: Fixed-wording facts where the winner leads, plus sources line
    """

    winner: str
    loser: str
    winner_score: TrendArcScore
    loser_score: TrendArcScore
    margin: int
    confidence: int
    headline: str
    recommendation: str
    evidence: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, object]:
        """Compact form used for cache keys and snapshots."""
        return {
            "winner": self.winner,
            "loser": self.loser,
            "winner_score": self.winner_score.overall,
            "loser_score": self.loser_score.overall,
            "margin": self.margin,
            "confidence": self.confidence,
        }


def _headline(winner: str, loser: str, margin: int) -> str:
    if margin >= 20:
        return f"{winner} clearly leads over {loser}"
    if margin >= 10:
        return f"{winner} has the edge over {loser}"
    if margin >= 5:
        return f"{winner} slightly ahead of {loser}"
    return f"{winner} and {loser} are virtually tied"


def _recommendation(
    category: ComparisonCategory | None,
    winner: str,
    loser: str,
    winner_score: TrendArcScore,
    loser_score: TrendArcScore,
    margin: int,
) -> str:
    if category is ComparisonCategory.MOVIES:
        if margin >= 10:
            return (
                f"Based on ratings and audience interest, you should watch {winner}. "
                f"It scores {winner_score.overall}/100 compared to {loser_score.overall}/100 for {loser}."
            )
        return f"Both are great choices! {winner} edges out slightly with better ratings and buzz."
    if category is ComparisonCategory.PRODUCTS:
        return (
            f"{winner} is the more popular choice with stronger search interest and user engagement. "
            f"Consider {winner} as your primary option."
        )
    if category is ComparisonCategory.TECH:
        return (
            f"{winner} shows more developer adoption and community activity. "
            "It may be the safer bet for your project."
        )
    if category is ComparisonCategory.GAMES:
        return (
            f"{winner} has more player interest and engagement. "
            f"If you can only pick one, go with {winner}."
        )
    return (
        f"Based on our analysis across {len(winner_score.sources)} data sources, "
        f"{winner} is currently more popular than {loser}."
    )


def _evidence(winner_score: TrendArcScore, loser_score: TrendArcScore) -> list[str]:
    lead, trail = winner_score.breakdown, loser_score.breakdown
    evidence: list[str] = []

    if lead.search_interest > trail.search_interest:
        evidence.append(f"Higher search interest ({lead.search_interest} vs {trail.search_interest})")
    if lead.social_buzz > trail.social_buzz:
        evidence.append("Stronger social engagement")
    if lead.authority > trail.authority:
        evidence.append("Better ratings and reviews")
    if lead.momentum > trail.momentum:
        evidence.append("Trending more positively")

    sources = list(dict.fromkeys([*winner_score.sources, *loser_score.sources]))
    evidence.append(f"Data from {', '.join(sources)}")
    return evidence


def generate_verdict(
    term_a: str,
    term_b: str,
    score_a: TrendArcScore,
    score_b: TrendArcScore,
    category: "str | ComparisonCategory | None" = ComparisonCategory.GENERAL,
) -> ComparisonVerdict:
    """Compare two scored terms.

    Args:
        term_a: First term (wins ties)
        term_b: Second term
        score_a: Score of term_a
        score_b: Score of term_b
        category: Comparison category, selects the recommendation template

    Returns:
        ComparisonVerdict

    Example:
        >>> verdict = generate_verdict("Python", "Rust", score_a, score_b, "tech")
        >>> verdict.headline
        'Python has the edge over Rust'
    """
    a_wins = score_a.overall >= score_b.overall
    winner, loser = (term_a, term_b) if a_wins else (term_b, term_a)
    winner_score, loser_score = (score_a, score_b) if a_wins else (score_b, score_a)

    margin = abs(score_a.overall - score_b.overall)
    parsed = ComparisonCategory.from_value(category)

    return ComparisonVerdict(
        winner=winner,
        loser=loser,
        winner_score=winner_score,
        loser_score=loser_score,
        margin=margin,
        confidence=round_half_up((score_a.confidence + score_b.confidence) / 2),
        headline=_headline(winner, loser, margin),
        recommendation=_recommendation(parsed, winner, loser, winner_score, loser_score, margin),
        evidence=_evidence(winner_score, loser_score),
    )


@dataclass
class QuickVerdict:
    winner: str
    margin: int
    headline: str
    confidence: int


def generate_quick_verdict(terms: list[str], series: SeriesLike) -> QuickVerdict:
    """Verdict from the trend series alone, with no other sources queried."""
    term_a, term_b = terms[0], terms[1]
    category = detect_category(terms).category

    score_a = calculate_trend_arc_score(series_source_metrics(series, term_a, term_b), category)
    score_b = calculate_trend_arc_score(series_source_metrics(series, term_b, term_a), category)

    winner = term_a if score_a.overall >= score_b.overall else term_b
    margin = abs(score_a.overall - score_b.overall)

    if margin >= 20:
        headline = f"{winner} dominates this comparison"
    elif margin >= 10:
        headline = f"{winner} leads in popularity"
    elif margin >= 5:
        headline = f"{winner} has a slight edge"
    else:
        headline = f"It's a close race between {term_a} and {term_b}"

    return QuickVerdict(
        winner=winner,
        margin=margin,
        headline=headline,
        confidence=round_half_up((score_a.confidence + score_b.confidence) / 2),
    )
