"""Ascent: division matching, tier grading and athlete progression."""

__version__ = "0.1.0"
