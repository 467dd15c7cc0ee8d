"""API routers for all endpoints."""

from opsmetrics.routers import snapshot

__all__ = ["snapshot"]
