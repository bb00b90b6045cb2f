"""Persistence repositories."""

from .donation_store import DonationStore

__all__ = ["DonationStore"]
