"""Trend series helpers.

A series is a sequence of points, each a mapping with a ``date`` key and one
numeric column per compared term (e.g. ``{"date": "2024-01-01", "iPhone": 72,
"Android": 55}``). Every engine function accepts either a list of such mappings
or an equivalent pandas DataFrame.

Non-numeric or missing readings are read as 0, never as an error.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

import numpy as np
import pandas as pd

from trendarc.engine.numeric import clamp, round_half_up

SeriesLike = Union[pd.DataFrame, Sequence[Mapping[str, Any]], None]


def to_frame(series: SeriesLike) -> pd.DataFrame:
    """Coerce a series to a DataFrame (empty for None or no points)."""
    if series is None:
        return pd.DataFrame()
    if isinstance(series, pd.DataFrame):
        return series
    return pd.DataFrame(list(series))


def to_records(series: SeriesLike) -> list[dict[str, Any]]:
    """Coerce a series to a list of plain dicts."""
    frame = to_frame(series)
    if frame.empty:
        return []
    return frame.to_dict(orient="records")


def term_values(series: SeriesLike, term: str) -> np.ndarray:
    """Extract one term's readings as floats, reading non-numbers as 0.

    Args:
        series: Trend series
        term: Term to read, matched loosely against the column names

    Returns:
        Float array with one value per point (zeros if no column matches)
    """
    frame = to_frame(series)
    if frame.empty:
        return np.array([], dtype=float)
    column = match_term_column(frame, term)
    if column is None:
        return np.zeros(len(frame), dtype=float)
    values = pd.to_numeric(frame[column], errors="coerce").fillna(0.0)
    return values.to_numpy(dtype=float)


def _normalize_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def match_term_column(series: SeriesLike, term: str) -> str | None:
    """Find the column holding a term, tolerating case, spaces and hyphens.

    Example:
        >>> match_term_column([{"date": "d", "Call of Duty": 1}], "call-of-duty")
        'Call of Duty'
    """
    frame = to_frame(series)
    columns = [str(c) for c in frame.columns if c != "date"]
    if term in columns:
        return term

    lowered = term.lower()
    target = _normalize_key(term)
    for column in columns:
        candidate = column.lower()
        if (
            candidate == lowered
            or _normalize_key(column) == target
            or re.sub(r"\s+", "-", candidate) == lowered
            or candidate.replace("-", " ") == lowered
        ):
            return column
    return None


@dataclass
class SeriesStats:
    """Search-interest readings derived from a trend series.

    Attributes:
        avg_interest: Mean interest over the window (0-100)
        momentum: Second-half vs first-half % change, clamped to ±100
        lead_percentage: Share of points where this term >= the other term
        volatility: Population standard deviation of the readings
    """

    avg_interest: int
    momentum: int
    lead_percentage: int
    volatility: int


def compute_series_stats(series: SeriesLike, term: str, other_term: str) -> SeriesStats:
    """Derive the search-interest readings for one term of a comparison.

    An empty series, or one with no column matching the term, yields neutral
    readings (50, 0, 50, 0).

    Args:
        series: Trend series holding both terms
        term: Term to describe (matched loosely against the column names)
        other_term: The term it is compared against

    Returns:
        SeriesStats with every field rounded to an integer
    """
    frame = to_frame(series)
    if frame.empty or match_term_column(frame, term) is None:
        return SeriesStats(avg_interest=50, momentum=0, lead_percentage=50, volatility=0)

    values = term_values(frame, term)
    other = term_values(frame, other_term)
    avg_interest = float(values.mean())

    half = len(values) // 2
    first, second = values[:half], values[half:]
    first_avg = first.sum() / (len(first) or 1)
    second_avg = second.sum() / (len(second) or 1)
    momentum = (second_avg - first_avg) / (first_avg or 1) * 100

    lead_percentage = float((values >= other).sum()) / len(values) * 100
    volatility = float(np.sqrt(((values - avg_interest) ** 2).mean()))

    return SeriesStats(
        avg_interest=round_half_up(avg_interest),
        momentum=round_half_up(clamp(float(momentum), -100.0, 100.0)),
        lead_percentage=round_half_up(lead_percentage),
        volatility=round_half_up(volatility),
    )
