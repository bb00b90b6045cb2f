"""API endpoint modules."""

from .donations import router as donations_router
from .sync import router as sync_router

__all__ = ["donations_router", "sync_router"]
