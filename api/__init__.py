"""API Package.

FastAPI server for donation intake and invoicing.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
