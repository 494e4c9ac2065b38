"""HTTP surface of the board: FastAPI app factory and task router."""

from __future__ import annotations

from .api import create_app

__all__ = ["create_app"]
