"""Ranked, cached activity feeds for a social platform."""

__version__ = "1.0.0"
