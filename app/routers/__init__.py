"""FastAPI routers package.

This package contains all API route handlers organized by domain:
- backup: Full database backups and restore
- snapshot: Collection snapshots and restore
- databases: Listing, status, collections, clone and sample data
- storage: Disk usage of the artifact directories
- history: Audit history and statistics
- cron: Local scheduler trigger
"""

from __future__ import annotations

__all__ = [
    "backup",
    "cron",
    "databases",
    "history",
    "snapshot",
    "storage",
]
