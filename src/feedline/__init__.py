"""Engagement counters, toggles and feed caching for the Feedline social app."""

__version__ = "0.1.0"
