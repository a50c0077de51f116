"""Environment-sourced configuration.

Reads the Odoo connection settings and the invoice sequence location from the
environment, loading a .env file at the repository root first if one exists.

Required:
- ODOO_BASE_URL: Odoo server URL (e.g., "https://erp.example.org")
- ODOO_USERNAME: Login of the integration user
- ODOO_PASSWORD: Password or API key of the integration user
- ODOO_DATABASE: Database name

Optional:
- ODOO_TIMEOUT_SECONDS: Per-request deadline for calls to Odoo
- ODOO_INVOICE_PREFIX: Invoice number prefix (default "ZIS")
- INVOICE_SEQUENCE_DB: SQLite file backing the per-day invoice sequence
"""

import os
from pathlib import Path
from typing import Mapping, Optional

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)

from connectors.odoo.odoo_client import OdooConfig
from core.observability import get_logger
from core.sequence.daily_sequence import DB_PATH

logger = get_logger(__name__)

REQUIRED_ODOO_VARS = ("ODOO_BASE_URL", "ODOO_USERNAME", "ODOO_PASSWORD", "ODOO_DATABASE")
DEFAULT_INVOICE_PREFIX = "ZIS"


def get_odoo_config(env: Optional[Mapping[str, str]] = None) -> Optional[OdooConfig]:
    """Build the Odoo configuration from environment variables.

    Args:
        env: Mapping to read instead of os.environ

    Returns:
        OdooConfig, or None when any required variable is missing, which
        disables the invoicing integration.
    """
    env = os.environ if env is None else env

    missing = [name for name in REQUIRED_ODOO_VARS if not env.get(name)]
    if missing:
        logger.warning(
            f"Odoo configuration incomplete (missing {', '.join(missing)}), "
            "invoice integration disabled"
        )
        return None

    timeout_seconds = None
    raw_timeout = env.get("ODOO_TIMEOUT_SECONDS")
    if raw_timeout:
        try:
            timeout_seconds = float(raw_timeout)
        except ValueError:
            logger.warning(f"Ignoring invalid ODOO_TIMEOUT_SECONDS={raw_timeout!r}")

    return OdooConfig(
        base_url=env["ODOO_BASE_URL"],
        username=env["ODOO_USERNAME"],
        password=env["ODOO_PASSWORD"],
        database=env["ODOO_DATABASE"],
        timeout_seconds=timeout_seconds,
        invoice_prefix=env.get("ODOO_INVOICE_PREFIX") or DEFAULT_INVOICE_PREFIX,
    )


def get_sequence_db_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Location of the SQLite invoice sequence database."""
    env = os.environ if env is None else env
    configured = env.get("INVOICE_SEQUENCE_DB")
    return Path(configured) if configured else DB_PATH
