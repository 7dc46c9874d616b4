"""TrendArc Score: per-source signals → weighted composite score.

Combines whichever per-source readings were collected for a term into four
components and a single 0-100 score:

- searchInterest: search-trend average (mandatory signal, neutral 50 if absent)
- socialBuzz: mean of the video-reach, streaming-popularity and knowledge-base
  interest scores that are present
- authority: mean of the rating-style scores that are present
- momentum: 50 + search-trend momentum / 2

Component weights depend on the comparison category. Missing sources never
raise; they shrink the ``sources`` list and therefore the confidence.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from trendarc.engine.numeric import clamp, round_half_up
from trendarc.engine.series import (
    SeriesLike,
    compute_series_stats,
    match_term_column,
    term_values,
    to_frame,
)

logger = logging.getLogger(__name__)


class ComparisonCategory(str, Enum):
    """Closed set of comparison categories, each with its own weight vector."""

    MOVIES = "movies"
    PRODUCTS = "products"
    TECH = "tech"
    PEOPLE = "people"
    GAMES = "games"
    MUSIC = "music"
    BRANDS = "brands"
    PLACES = "places"
    GENERAL = "general"

    @classmethod
    def from_value(cls, value: "str | ComparisonCategory | None") -> "ComparisonCategory | None":
        """Parse a category name case-insensitively, None if unrecognized."""
        if isinstance(value, ComparisonCategory):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class CategoryWeights:
    """Component weights for one category (sum to 1.0)."""

    search_interest: float
    social_buzz: float
    authority: float
    momentum: float


# search_interest carries the largest weight in every category.
CATEGORY_WEIGHTS: dict[ComparisonCategory, CategoryWeights] = {
    ComparisonCategory.MOVIES: CategoryWeights(0.45, 0.15, 0.30, 0.10),
    ComparisonCategory.PRODUCTS: CategoryWeights(0.45, 0.25, 0.20, 0.10),
    ComparisonCategory.TECH: CategoryWeights(0.40, 0.20, 0.25, 0.15),
    ComparisonCategory.PEOPLE: CategoryWeights(0.45, 0.35, 0.10, 0.10),
    ComparisonCategory.GAMES: CategoryWeights(0.40, 0.30, 0.20, 0.10),
    ComparisonCategory.MUSIC: CategoryWeights(0.40, 0.35, 0.15, 0.10),
    ComparisonCategory.BRANDS: CategoryWeights(0.40, 0.25, 0.25, 0.10),
    ComparisonCategory.PLACES: CategoryWeights(0.45, 0.20, 0.25, 0.10),
    ComparisonCategory.GENERAL: CategoryWeights(0.45, 0.25, 0.20, 0.10),
}

NEUTRAL_SCORE = 50.0


# ---------------------------------------------------------------------------
# Per-source readings. Every source is optional: None means "not collected".
# ---------------------------------------------------------------------------


class _SourceReading(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GoogleTrendsMetrics(_SourceReading):
    avg_interest: float = Field(..., description="Mean search interest, 0-100")
    momentum: float = Field(default=0.0, description="-100 to 100, negative = declining")
    volatility: float = 0.0
    lead_percentage: float = Field(default=50.0, description="% of points leading")


class YouTubeMetrics(_SourceReading):
    total_views: float = 0.0
    avg_views: float = 0.0
    video_count: float = 0.0
    engagement: float = Field(default=0.0, description="likes / views ratio")


class SpotifyMetrics(_SourceReading):
    popularity: float = Field(..., description="Already on a 0-100 scale")
    followers: float = 0.0


class WikipediaMetrics(_SourceReading):
    page_views: float = 0.0


class TmdbMetrics(_SourceReading):
    rating: float = Field(..., description="0-10")
    vote_count: float = 0.0
    popularity: float = 0.0


class OmdbMetrics(_SourceReading):
    imdb_rating: float | None = None  # 0-10
    rotten_tomatoes: float | None = None  # 0-100
    metascore: float | None = None  # 0-100


class BestBuyMetrics(_SourceReading):
    rating: float = Field(..., description="0-5 stars")
    review_count: float = 0.0


class SteamMetrics(_SourceReading):
    review_score: float = Field(..., description="% positive reviews, 0-100")
    player_count: float = 0.0


class GithubMetrics(_SourceReading):
    stars: float = 0.0
    forks: float = 0.0
    contributors: float = 0.0


class SourceMetrics(_SourceReading):
    """All readings collected for one term, one optional field per source."""

    google_trends: GoogleTrendsMetrics | None = None
    youtube: YouTubeMetrics | None = None
    spotify: SpotifyMetrics | None = None
    wikipedia: WikipediaMetrics | None = None
    tmdb: TmdbMetrics | None = None
    omdb: OmdbMetrics | None = None
    bestbuy: BestBuyMetrics | None = None
    steam: SteamMetrics | None = None
    github: GithubMetrics | None = None

    def merged_with(self, other: "SourceMetrics") -> "SourceMetrics":
        """Return a copy where sources present in other replace this one's."""
        updates = {name: value for name, value in other if value is not None}
        return self.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------


@dataclass
class ScoreBreakdown:
    """The four weighted components, each an integer in [0, 100]."""

    search_interest: int
    social_buzz: int
    authority: int
    momentum: int

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class TrendArcScore:
    """Composite score for one term.

    Attributes:
        overall: Weighted score, integer in [0, 100]
        confidence: min(95, 40 + 15 × len(sources))
        breakdown: Component scores
        sources: Labels of the sources that contributed, in fixed order
        explanation: Human-readable summary of the notable components
    """

    overall: int
    confidence: int
    breakdown: ScoreBreakdown
    sources: list[str] = field(default_factory=list)
    explanation: str = ""


def _youtube_score(yt: YouTubeMetrics) -> float:
    reach = min(60.0, math.log10(max(yt.avg_views, 0.0) + 1) * 10)
    volume = min(20.0, math.log10(max(yt.video_count, 0.0) + 1) * 10)
    engagement_bonus = min(20.0, max(yt.engagement, 0.0) * 500)
    return min(100.0, reach + volume + engagement_bonus)


def _wikipedia_score(wiki: WikipediaMetrics) -> float:
    return min(100.0, math.log10(max(wiki.page_views, 0.0) + 1) * 20)


def _omdb_score(omdb: OmdbMetrics) -> float:
    return (
        (omdb.imdb_rating or 0.0) * 10
        + (omdb.rotten_tomatoes or 0.0)
        + (omdb.metascore or 0.0)
    ) / 3


def _github_score(gh: GithubMetrics) -> float:
    return min(
        100.0,
        math.log10(max(gh.stars, 0.0) + 1) * 15 + math.log10(max(gh.forks, 0.0) + 1) * 10,
    )


def _explain(search_interest: float, social_buzz: float, authority: float, momentum: float) -> str:
    parts: list[str] = []

    if search_interest >= 60:
        parts.append("high search interest")
    elif search_interest <= 40:
        parts.append("lower search volume")

    if social_buzz >= 60:
        parts.append("strong social engagement")

    if authority >= 70:
        parts.append("well-rated")

    if momentum >= 60:
        parts.append("trending upward")
    elif momentum <= 40:
        parts.append("declining interest")

    if parts:
        return f"Shows {', '.join(parts)}"
    return "Moderate performance across metrics"


def degraded_score(reason: str) -> TrendArcScore:
    """Fixed low-confidence score returned when no weights can be resolved."""
    neutral = round_half_up(NEUTRAL_SCORE)
    return TrendArcScore(
        overall=neutral,
        confidence=30,
        breakdown=ScoreBreakdown(neutral, neutral, neutral, neutral),
        sources=[],
        explanation=f"Score unavailable: {reason}",
    )


def resolve_weights(
    category: "str | ComparisonCategory | None",
    weights_table: Mapping[ComparisonCategory, CategoryWeights] | None = None,
) -> CategoryWeights | None:
    """Look up a category's weights, falling back to the general weights.

    Returns:
        The weights, or None if neither the category nor 'general' is present
    """
    table = CATEGORY_WEIGHTS if weights_table is None else weights_table
    parsed = ComparisonCategory.from_value(category)
    if parsed is not None and parsed in table:
        return table[parsed]
    if category and parsed is None:
        logger.debug("Unknown category %r, using general weights", category)
    return table.get(ComparisonCategory.GENERAL)


def calculate_trend_arc_score(
    metrics: SourceMetrics | Mapping[str, Any] | None,
    category: "str | ComparisonCategory | None" = ComparisonCategory.GENERAL,
    weights_table: Mapping[ComparisonCategory, CategoryWeights] | None = None,
) -> TrendArcScore:
    """Calculate the TrendArc Score of one term from its source readings.

    Args:
        metrics: Readings for the term (a SourceMetrics or an equivalent dict)
        category: Comparison category; unknown values use the general weights
        weights_table: Override of CATEGORY_WEIGHTS (mainly for tests)

    Returns:
        TrendArcScore. Never raises on missing data; if no weights can be
        resolved a fixed degraded score (overall 50, confidence 30) is returned.

    Example:
        >>> metrics = SourceMetrics(google_trends={"avg_interest": 72, "momentum": 30})
        >>> score = calculate_trend_arc_score(metrics, "tech")
        >>> score.breakdown.social_buzz
        50
        >>> score.sources
        ['Google Trends']
    """
    weights = resolve_weights(category, weights_table)
    if weights is None:
        logger.warning("No weight table available for category %r, returning degraded score", category)
        return degraded_score("no weight table available")

    if metrics is None:
        metrics = SourceMetrics()
    elif not isinstance(metrics, SourceMetrics):
        metrics = SourceMetrics.model_validate(dict(metrics))

    sources: list[str] = []
    search_interest = NEUTRAL_SCORE
    momentum = NEUTRAL_SCORE

    # Search interest and momentum (search trends)
    gt = metrics.google_trends
    if gt is not None:
        search_interest = clamp(gt.avg_interest)
        momentum = clamp(NEUTRAL_SCORE + gt.momentum / 2)
        sources.append("Google Trends")

    # Social buzz
    social_scores: list[float] = []
    if metrics.youtube is not None:
        social_scores.append(_youtube_score(metrics.youtube))
        sources.append("YouTube")
    if metrics.spotify is not None:
        social_scores.append(clamp(metrics.spotify.popularity))
        sources.append("Spotify")
    if metrics.wikipedia is not None:
        social_scores.append(_wikipedia_score(metrics.wikipedia))
        sources.append("Wikipedia")

    # Authority
    authority_scores: list[float] = []
    if metrics.tmdb is not None:
        authority_scores.append(clamp(metrics.tmdb.rating * 10))
        sources.append("TMDB")
    if metrics.omdb is not None:
        authority_scores.append(clamp(_omdb_score(metrics.omdb)))
        sources.append("OMDb")
    if metrics.bestbuy is not None:
        authority_scores.append(clamp(metrics.bestbuy.rating * 20))
        sources.append("Best Buy")
    if metrics.steam is not None:
        authority_scores.append(clamp(metrics.steam.review_score))
        sources.append("Steam")
    if metrics.github is not None:
        authority_scores.append(_github_score(metrics.github))
        sources.append("GitHub")

    social_buzz = float(np.mean(social_scores)) if social_scores else NEUTRAL_SCORE
    authority = float(np.mean(authority_scores)) if authority_scores else NEUTRAL_SCORE

    overall = round_half_up(
        search_interest * weights.search_interest
        + social_buzz * weights.social_buzz
        + authority * weights.authority
        + momentum * weights.momentum
    )

    return TrendArcScore(
        overall=int(clamp(overall)),
        confidence=min(95, 40 + len(sources) * 15),
        breakdown=ScoreBreakdown(
            search_interest=round_half_up(search_interest),
            social_buzz=round_half_up(social_buzz),
            authority=round_half_up(authority),
            momentum=round_half_up(momentum),
        ),
        sources=sources,
        explanation=_explain(search_interest, social_buzz, authority, momentum),
    )


def quick_score(avg_interest: float, lead_percentage: float, momentum: float = 0.0) -> int:
    """Single-source score from search-trend stats alone.

    Example:
        >>> quick_score(60, 70, 20)
        63
    """
    return round_half_up(avg_interest * 0.5 + lead_percentage * 0.3 + (50 + momentum / 2) * 0.2)


def series_source_metrics(series: SeriesLike, term: str, other_term: str) -> SourceMetrics:
    """Search-trend readings for a term, taken from a comparison series.

    A term with no matching column contributes no search-trend source, so its
    search interest stays at the neutral 50.
    """
    frame = to_frame(series)
    if frame.empty or match_term_column(frame, term) is None:
        if not frame.empty:
            logger.warning(
                "Term %r not found in series (columns: %s)",
                term, ", ".join(str(c) for c in frame.columns if c != "date"),
            )
        return SourceMetrics()
    stats = compute_series_stats(frame, term, other_term)
    return SourceMetrics(google_trends=GoogleTrendsMetrics(**asdict(stats)))


def calculate_trend_arc_score_time_series(
    series: SeriesLike,
    term: str,
    category: "str | ComparisonCategory | None" = ComparisonCategory.GENERAL,
) -> pd.DataFrame:
    """Per-point TrendArc Score for a term's search-interest history.

    Historical points only carry search interest, so social buzz and authority
    stay at the neutral 50. Momentum at each point is 50 + 2 × (change from the
    previous point), clamped to [0, 100]; the first point is neutral.

    Args:
        series: Trend series
        term: Term to score (matched loosely against the column names)
        category: Comparison category for the weights

    Returns:
        DataFrame with columns date, score, search_interest, social_buzz,
        authority, momentum. Empty if the term is not in the series.
    """
    columns = ["date", "score", "search_interest", "social_buzz", "authority", "momentum"]
    frame = to_frame(series)
    column = match_term_column(frame, term) if not frame.empty else None
    if column is None:
        if not frame.empty:
            logger.warning(
                "Term %r not found in series (columns: %s)",
                term, ", ".join(str(c) for c in frame.columns if c != "date"),
            )
        return pd.DataFrame(columns=columns)

    weights = resolve_weights(category) or CATEGORY_WEIGHTS[ComparisonCategory.GENERAL]
    interest = term_values(frame, column)
    change = np.diff(interest, prepend=interest[0]) if len(interest) else interest
    momentum = np.clip(NEUTRAL_SCORE + change * 2, 0, 100)

    raw = (
        interest * weights.search_interest
        + NEUTRAL_SCORE * weights.social_buzz
        + NEUTRAL_SCORE * weights.authority
        + momentum * weights.momentum
    )
    dates = frame["date"].tolist() if "date" in frame.columns else list(range(len(frame)))

    return pd.DataFrame({
        "date": dates,
        "score": [int(clamp(round_half_up(v))) for v in raw],
        "search_interest": [round_half_up(v) for v in interest],
        "social_buzz": round_half_up(NEUTRAL_SCORE),
        "authority": round_half_up(NEUTRAL_SCORE),
        "momentum": [round_half_up(v) for v in momentum],
    }, columns=columns)
