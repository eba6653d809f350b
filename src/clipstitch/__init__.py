"""Stitch recorded media segments into downloadable clips."""

__version__ = "0.1.0"
