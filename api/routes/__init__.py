"""API Routes Package."""

from api.routes import health, donations

__all__ = [
    "health",
    "donations",
]
