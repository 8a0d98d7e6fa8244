"""App package for the MongoDB operations console.

Provides the FastAPI application factory, routers and request services.
"""

from __future__ import annotations

from app.main import create_app

__all__ = ["create_app"]
