"""Activity definitions module."""

from activities.invoicing import (
    synthesize_donation_invoice,
    run_invoice_synthesis,
    dispatch_invoice_synthesis,
    DonationInvoiceInput,
    DonationInvoiceOutput,
)

__all__ = [
    # Temporal activity
    "synthesize_donation_invoice",
    "DonationInvoiceInput",
    "DonationInvoiceOutput",
    # In-process dispatch
    "run_invoice_synthesis",
    "dispatch_invoice_synthesis",
]
