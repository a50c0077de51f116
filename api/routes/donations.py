"""Donation endpoints.

Accepts donations and schedules their invoice in the background. The response
never waits for, or depends on, the accounting system.

Accepted donations are tracked in process memory only, for status lookups. The
store keeps the most recent MAX_TRACKED_DONATIONS; older ones are forgotten and
look up as 404. Their invoices are unaffected.
"""

import time
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field

from activities.invoicing import run_invoice_synthesis
from core.models import Campaign, Donor
from core.observability import get_logger


logger = get_logger(__name__)

router = APIRouter()

InvoiceRunner = Callable[[Donor, Campaign], Awaitable[Optional[int]]]


class CampaignRequest(BaseModel):
    """Campaign the donation is for."""
    id: str = Field(..., min_length=1)
    title: str


class DonationRequest(BaseModel):
    """Incoming donation."""
    campaign: CampaignRequest
    name: str = Field(..., min_length=1, description="Donor display name")
    amount: Union[int, float] = Field(..., gt=0)
    message: Optional[str] = None
    email: Optional[str] = None


class DonationResponse(BaseModel):
    """Accepted donation. invoice_id is filled in once synthesis finishes."""
    donor: Donor
    campaign: Campaign
    invoice_status: str = "PENDING"
    invoice_id: Optional[int] = None


MAX_TRACKED_DONATIONS = 10000

# In-memory store, keyed by donor id, oldest first
_donations: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()


def get_invoice_runner() -> InvoiceRunner:
    """Dependency: what runs invoice synthesis for an accepted donation."""
    return run_invoice_synthesis


async def _synthesize_and_record(runner: InvoiceRunner, donor: Donor, campaign: Campaign) -> None:
    invoice_id = await runner(donor, campaign)
    record = _donations.get(donor.id)
    if record is not None:
        record["invoice_id"] = invoice_id
        record["invoice_status"] = "CREATED" if invoice_id is not None else "FAILED"


@router.post("", response_model=DonationResponse, status_code=202)
async def create_donation(
    request: DonationRequest,
    background_tasks: BackgroundTasks,
    runner: InvoiceRunner = Depends(get_invoice_runner),
) -> DonationResponse:
    """Record a donation and schedule its invoice."""
    donor = Donor(
        id=f"don_{uuid.uuid4().hex[:16]}",
        name=request.name,
        amount=request.amount,
        message=request.message,
        email=request.email,
        timestamp=int(time.time() * 1000),
    )
    campaign = Campaign(id=request.campaign.id, title=request.campaign.title)

    _donations[donor.id] = {
        "donor": donor,
        "campaign": campaign,
        "invoice_status": "PENDING",
        "invoice_id": None,
    }
    while len(_donations) > MAX_TRACKED_DONATIONS:
        _donations.popitem(last=False)
    background_tasks.add_task(_synthesize_and_record, runner, donor, campaign)
    logger.info(f"Accepted donation {donor.id} of {donor.amount} to {campaign.id}")

    return DonationResponse(donor=donor, campaign=campaign)


@router.get("/{donor_id}", response_model=DonationResponse)
async def get_donation(donor_id: str) -> DonationResponse:
    """Get a donation and the state of its invoice."""
    record = _donations.get(donor_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Donation {donor_id} not found")
    return DonationResponse(**record)
