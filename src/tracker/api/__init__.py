"""HTTP API: FastAPI app factory and JSON routes under /api."""

from tracker.api.app import create_app

__all__ = ["create_app"]
