"""Services package.

This package contains reusable service modules:
- auth: Identity header, domain allow-list and local-caller checks
- dummy_data: Sample document generators
"""

from __future__ import annotations

__all__ = [
    "auth",
    "dummy_data",
]
