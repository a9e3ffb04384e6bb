"""Homico - hiring and project tracking for the home-services marketplace."""

__version__ = "0.4.0"
