# src/donation_sync/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import donations_router, sync_router

__all__ = ["donations_router", "sync_router"]
