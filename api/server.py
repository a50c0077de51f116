"""FastAPI server for donation intake.

Donations are acknowledged immediately; their invoices are synthesized in the
background against the configured accounting system.

Run with:
    uvicorn api.server:app --reload
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import donations, health
from connectors import list_available_connectors
from core import __version__
from core.config import get_odoo_config
from core.observability import configure_logging, get_logger


configure_logging(json_format=os.getenv("LOG_FORMAT", "").lower() == "json")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config = get_odoo_config()
    if config is None:
        logger.warning("Donations will be accepted without invoices (Odoo not configured)")
    else:
        logger.info(
            f"Invoicing donations into {config.base_url} (database {config.database}, "
            f"prefix {config.invoice_prefix}); connectors: {list_available_connectors()}"
        )

    yield

    logger.info("Donation API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Donation Invoicing API",
        description="Donation intake with best-effort invoice synthesis in Odoo",
        version=__version__,
        lifespan=lifespan,
    )

    # Donation forms post from the public site
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(donations.router, prefix="/donations", tags=["Donations"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
