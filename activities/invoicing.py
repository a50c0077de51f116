"""
Invoicing Activities for Donation Intake

Fire-and-forget boundary between donation intake and the accounting system:
- run_invoice_synthesis: in-process synthesis for one donation, never raises
- dispatch_invoice_synthesis: schedule run_invoice_synthesis on the running loop
- synthesize_donation_invoice: the same work as a Temporal activity

Invoice synthesis is best-effort. A donation is accepted whether or not its
invoice could be created, so nothing here propagates an error to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError
from temporalio import activity

from connectors import create_connector
from connectors.erp_base import SynthesisReport
from connectors.odoo import OdooConfig, XmlRpcTransport
from core.config import get_odoo_config, get_sequence_db_path
from core.models import Campaign, Donor
from core.observability import get_logger, with_correlation
from core.sequence import SequenceGenerator, SqliteDailySequence

logger = get_logger(__name__)

CONNECTOR_TYPE = "odoo"


# =============================================================================
# Activity Input/Output Models
# =============================================================================

@dataclass
class DonationInvoiceInput:
    """Input for synthesize_donation_invoice activity.

    donor and campaign are plain dicts so numbers keep their JSON type
    (an integer amount stays an integer) through the Temporal converter.
    """
    donor: Dict[str, Any]
    campaign: Dict[str, Any]


@dataclass
class DonationInvoiceOutput:
    """Output from synthesize_donation_invoice activity"""
    donor_id: str
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_status: str = "UNKNOWN"
    steps: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_report(cls, report: SynthesisReport) -> "DonationInvoiceOutput":
        return cls(
            donor_id=report.donor_id,
            invoice_id=report.invoice_id,
            invoice_number=report.invoice_number,
            invoice_status=report.invoice_status.value,
            steps=[step.model_dump(mode="json") for step in report.steps],
            error=report.error,
        )


# =============================================================================
# In-process dispatch
# =============================================================================

def default_sequence() -> Optional[SequenceGenerator]:
    """SQLite-backed sequence at the configured location, or None if unusable."""
    try:
        sequence = SqliteDailySequence(get_sequence_db_path())
        sequence.init_db()
        return sequence
    except Exception as e:
        logger.warning(f"Invoice sequence store unavailable, numbers will use fallback: {e}")
        return None


async def synthesize_with_report(
    donor: Donor,
    campaign: Campaign,
    config: Optional[OdooConfig] = None,
    sequence: Optional[SequenceGenerator] = None,
    transport: Optional[XmlRpcTransport] = None,
) -> Optional[SynthesisReport]:
    """Run invoice synthesis with a fresh connector.

    Returns:
        The synthesis report, or None when the integration is disabled
    """
    if config is None:
        config = get_odoo_config()
    if config is None:
        logger.info(f"Odoo integration disabled, no invoice for donation {donor.id}")
        return None

    if sequence is None:
        sequence = await asyncio.to_thread(default_sequence)

    connector = create_connector(
        CONNECTOR_TYPE, config, sequence=sequence, transport=transport
    )
    return await connector.synthesize_invoice_with_report(donor, campaign)


async def run_invoice_synthesis(
    donor: Donor,
    campaign: Campaign,
    config: Optional[OdooConfig] = None,
    sequence: Optional[SequenceGenerator] = None,
    transport: Optional[XmlRpcTransport] = None,
) -> Optional[int]:
    """Create the invoice for one donation.

    Returns:
        The invoice id, or None. Never raises.
    """
    with with_correlation(donor_id=donor.id, campaign_id=campaign.id):
        try:
            report = await synthesize_with_report(donor, campaign, config, sequence, transport)
        except Exception:
            logger.exception(f"Invoice synthesis crashed for donation {donor.id}")
            return None

    return report.invoice_id if report is not None else None


_background_tasks: Set["asyncio.Task[Optional[int]]"] = set()


def dispatch_invoice_synthesis(
    donor: Donor,
    campaign: Campaign,
    config: Optional[OdooConfig] = None,
    sequence: Optional[SequenceGenerator] = None,
    transport: Optional[XmlRpcTransport] = None,
) -> "asyncio.Task[Optional[int]]":
    """Schedule run_invoice_synthesis without waiting for it.

    Must be called from a running event loop. The returned task resolves to
    the invoice id or None.
    """
    task = asyncio.create_task(
        run_invoice_synthesis(donor, campaign, config, sequence, transport),
        name=f"invoice-{donor.id}",
    )
    # The loop only keeps weak references to tasks
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


# =============================================================================
# Temporal activity
# =============================================================================

@activity.defn
async def synthesize_donation_invoice(input: DonationInvoiceInput) -> DonationInvoiceOutput:
    """
    Synthesize the invoice for one donation.

    Never fails the activity: the outcome, including any error, is returned
    so the workflow can record it without retrying.
    """
    info = activity.info()
    donor_id = str(input.donor.get("id", ""))

    with with_correlation(
        workflow_id=info.workflow_id,
        workflow_run_id=info.workflow_run_id,
        activity_name=info.activity_type,
        donor_id=donor_id or None,
    ):
        activity.logger.info(f"Synthesizing invoice for donation {donor_id}")

        try:
            donor = Donor(**input.donor)
            campaign = Campaign(**input.campaign)
        except ValidationError as e:
            logger.error(f"Rejected donation payload: {e}")
            return DonationInvoiceOutput(donor_id=donor_id, error=f"Invalid donation: {e}")

        try:
            report = await synthesize_with_report(donor, campaign)
        except Exception as e:
            logger.exception(f"Invoice synthesis crashed for donation {donor.id}")
            return DonationInvoiceOutput(donor_id=donor.id, error=f"{type(e).__name__}: {e}")

        if report is None:
            return DonationInvoiceOutput(donor_id=donor.id, error="Odoo integration disabled")

        activity.logger.info(
            f"Donation {donor.id}: invoice {report.invoice_id} ({report.invoice_status.value})"
        )
        return DonationInvoiceOutput.from_report(report)
