"""Odoo connectivity check for the invoicing integration.

Usage:
    python scripts/check_odoo_connection.py
    python scripts/check_odoo_connection.py --invoice 42
"""

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connectors import create_connector
from core.config import REQUIRED_ODOO_VARS, get_odoo_config


async def check_odoo(invoice_id=None) -> bool:
    """Print configuration status, authenticate, optionally read one invoice."""
    print("\n" + "=" * 70)
    print("ODOO INVOICING CONFIGURATION CHECK")
    print("=" * 70 + "\n")

    for var in REQUIRED_ODOO_VARS:
        value = os.getenv(var)
        shown = "SET" if var == "ODOO_PASSWORD" and value else (value or "NOT SET")
        print(f"{'✓' if value else '✗'} {var}")
        print(f"   Value: {shown}")

    config = get_odoo_config()
    if config is None:
        print("\n✗ NOT CONFIGURED: invoices will not be created")
        return False

    print(f"\n  Endpoint: {config.object_url}")
    print(f"  Prefix:   {config.invoice_prefix}")

    connector = create_connector("odoo", config)
    if not await connector.test_connection():
        print("\n✗ Could not authenticate with Odoo")
        return False
    print(f"\n✓ Authenticated as uid {connector.client.uid}")

    if invoice_id is not None:
        status = await connector.get_invoice_status(invoice_id)
        if status is None:
            print(f"✗ Invoice {invoice_id} not found")
            return False
        print(f"✓ Invoice {invoice_id}: {status.value}")

    return True


def main():
    parser = argparse.ArgumentParser(description="Check the Odoo invoicing integration")
    parser.add_argument("--invoice", type=int, help="Invoice (account.move) id to inspect")
    args = parser.parse_args()

    ok = asyncio.run(check_odoo(args.invoice))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
