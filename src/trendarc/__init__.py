"""TrendArc: multi-source comparison scoring and change-tracking engine."""

__version__ = "0.1.0"
