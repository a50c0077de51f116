"""Workflow definitions module."""

from workflows.donation_invoice_workflow import (
    DonationInvoiceWorkflow,
    TASK_QUEUE_INVOICING,
)

__all__ = ["DonationInvoiceWorkflow", "TASK_QUEUE_INVOICING"]
