"""Core data models - accounting-neutral donation records."""

from core.models.donation import Campaign, Donor

__all__ = [
    "Campaign",
    "Donor",
]
