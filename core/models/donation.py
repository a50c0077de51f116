"""Donation input records.

These are the platform-side records handed to invoice synthesis. They are
independent of any accounting system.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Campaign(BaseModel):
    """A fundraising campaign.

    Attributes:
        id: Platform campaign identifier (e.g. "camp_12345678")
        title: Human-readable campaign title
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Campaign identifier")
    title: str = Field(..., description="Campaign title")


class Donor(BaseModel):
    """A single donation as recorded by the platform.

    Attributes:
        id: Unique donation identifier
        name: Donor display name, used as the partner name in accounting
        amount: Donation amount in the campaign currency
        message: Optional note left by the donor
        email: Optional contact email
        timestamp: Donation time in epoch milliseconds
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Donation identifier")
    name: str = Field(..., min_length=1, description="Donor display name")
    amount: Union[int, float] = Field(..., gt=0, description="Donation amount")
    message: Optional[str] = Field(default=None, description="Donor message")
    email: Optional[str] = Field(default=None, description="Donor email")
    timestamp: int = Field(..., ge=0, description="Epoch milliseconds")

    @property
    def donated_at(self) -> datetime:
        """Donation time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    @property
    def donation_date(self) -> date:
        """Calendar date of the donation, in UTC."""
        return self.donated_at.date()
