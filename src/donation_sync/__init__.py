"""Offline-first donation capture with background sync to the receipt API."""

__version__ = "0.1.0"
