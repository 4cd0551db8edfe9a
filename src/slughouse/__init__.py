"""Slughouse - private music library API and player."""

__version__ = "0.1.0"
