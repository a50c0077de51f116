"""Worker for donation invoicing.

Connects to Temporal, listens on the invoicing task queue and executes the
donation invoice workflow and its synthesis activity.

Run with --queue <name> to poll a different task queue.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from workflows.donation_invoice_workflow import DonationInvoiceWorkflow, TASK_QUEUE_INVOICING
from activities.invoicing import synthesize_donation_invoice
from core.observability import configure_logging


logger = logging.getLogger(__name__)

WORKFLOWS = [DonationInvoiceWorkflow]
ACTIVITIES = [synthesize_donation_invoice]


async def run_worker(queue: str = TASK_QUEUE_INVOICING):
    """Start worker listening on the task queue.

    Args:
        queue: Task queue to poll

    Raises:
        Exception: If connection to Temporal fails
    """
    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        worker = Worker(
            client,
            task_queue=queue,
            workflows=WORKFLOWS,
            activities=ACTIVITIES,
        )
        logger.info(f"Worker created for queue '{queue}':")
        logger.info(f"  - Workflows: {len(WORKFLOWS)}")
        logger.info(f"  - Activities: {len(ACTIVITIES)}")

        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Donation Invoicing Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE_INVOICING,
        help=f"Task queue to poll (default: {TASK_QUEUE_INVOICING})"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON logs"
    )

    args = parser.parse_args()
    configure_logging(level=logging.INFO, json_format=args.json_logs)
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
