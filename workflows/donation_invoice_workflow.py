"""
Donation Invoice Workflow

Durable fire-and-forget dispatch of invoice synthesis for one donation.
The intake side starts this workflow and moves on; the worker runs the
synthesize_donation_invoice activity exactly once.

Synthesis is never retried: a retry could create a second invoice for a
donation whose first attempt created one but failed to report it.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

# Import activities
with workflow.unsafe.imports_passed_through():
    from activities.invoicing import (
        synthesize_donation_invoice,
        DonationInvoiceInput,
        DonationInvoiceOutput,
    )


TASK_QUEUE_INVOICING = "donation-invoicing"


@workflow.defn
class DonationInvoiceWorkflow:
    """Run invoice synthesis for one donation, single attempt."""

    @workflow.run
    async def run(self, input: DonationInvoiceInput) -> DonationInvoiceOutput:
        donor_id = input.donor.get("id", "")
        workflow.logger.info(f"Starting invoice workflow for donation {donor_id}")

        result = await workflow.execute_activity(
            synthesize_donation_invoice,
            input,
            start_to_close_timeout=timedelta(minutes=5),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

        if result.invoice_id is None:
            workflow.logger.warning(
                f"No invoice created for donation {donor_id}: {result.error}"
            )
        else:
            workflow.logger.info(
                f"Donation {donor_id} invoiced as {result.invoice_id} "
                f"({result.invoice_number}, {result.invoice_status})"
            )
        return result
