"""Peak detection and event correlation."""

from trendarc.peaks.detector import (
    PeakEvent,
    detect_peaks_with_events,
    find_peaks,
    get_event_citations,
)
from trendarc.peaks.events import CandidateEvent, Citation, EventSearch, NullEventSearch

__all__ = [
    "CandidateEvent",
    "Citation",
    "EventSearch",
    "NullEventSearch",
    "PeakEvent",
    "detect_peaks_with_events",
    "find_peaks",
    "get_event_citations",
]
