"""
Service layer.
Services coordinate engine builds for the HTTP surface.
"""

from .snapshot_service import SnapshotService, get_snapshot_service

__all__ = ["SnapshotService", "get_snapshot_service"]
