"""Start a donation invoice workflow.

Reads a donation as JSON ({"donor": {...}, "campaign": {...}}), starts a
DonationInvoiceWorkflow for it on Temporal and prints the outcome.

With --local the synthesis runs in this process instead, against the Odoo
server configured in the environment, without Temporal.

Usage:
    python scripts/start_donation_invoice.py donation.json
    python scripts/start_donation_invoice.py - --local < donation.json
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
import logging

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.invoicing import (
    DonationInvoiceInput,
    DonationInvoiceOutput,
    synthesize_with_report,
)
from core.models import Campaign, Donor
from workflows.donation_invoice_workflow import DonationInvoiceWorkflow, TASK_QUEUE_INVOICING


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def load_donation(source: str) -> DonationInvoiceInput:
    """Load {"donor": ..., "campaign": ...} from a file path or "-" for stdin."""
    text = sys.stdin.read() if source == "-" else Path(source).read_text()
    data = json.loads(text)
    return DonationInvoiceInput(donor=data["donor"], campaign=data["campaign"])


async def start_donation_invoice_workflow(input: DonationInvoiceInput, wait: bool = True):
    """Start the workflow and optionally wait for its result.

    Returns:
        DonationInvoiceOutput when waiting, otherwise the workflow id
    """
    from temporal_client import get_temporal_client

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    workflow_id = f"donation-invoice-{input.donor['id']}"
    handle = await client.start_workflow(
        DonationInvoiceWorkflow.run,
        input,
        id=workflow_id,
        task_queue=TASK_QUEUE_INVOICING,
    )
    logger.info(f"Workflow started: {handle.id}")

    if not wait:
        return handle.id

    logger.info("Waiting for result...")
    return await handle.result()


async def run_local(input: DonationInvoiceInput) -> DonationInvoiceOutput:
    donor = Donor(**input.donor)
    campaign = Campaign(**input.campaign)
    report = await synthesize_with_report(donor, campaign)
    if report is None:
        return DonationInvoiceOutput(donor_id=donor.id, error="Odoo integration disabled")
    return DonationInvoiceOutput.from_report(report)


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Create the invoice for one donation")
    parser.add_argument("donation", help="JSON file with donor and campaign, or - for stdin")
    parser.add_argument("--local", action="store_true", help="Run in-process without Temporal")
    parser.add_argument("--no-wait", action="store_true", help="Return once the workflow started")
    args = parser.parse_args()

    try:
        input = load_donation(args.donation)
        if args.local:
            result = asyncio.run(run_local(input))
        else:
            result = asyncio.run(start_donation_invoice_workflow(input, wait=not args.no_wait))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if isinstance(result, DonationInvoiceOutput):
        print(json.dumps(asdict(result), indent=2))
        return 0 if result.invoice_id is not None else 2
    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
