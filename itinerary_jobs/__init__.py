"""Asynchronous itinerary job pipeline."""

__version__ = "0.1.0"
