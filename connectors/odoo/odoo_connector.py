"""Odoo Invoice Connector.

Implements the InvoiceConnector interface for Odoo over XML-RPC.

Synthesis flow for one donation:
 1. Authenticate (session uid cached on the client)
 2. Find or create the donor's partner (exact name match)
 3. Find or create the "Donation" service product
 4. Resolve an income account          (optional, 5 strategies)
 5. Resolve a sales journal            (optional, 2 strategies)
 6. Resolve payment terms              (optional, 2 strategies)
 7. Compute the invoice number
 8. Create the draft invoice
 9. Post it                            (3 fallback levels, failures absorbed)
10. Write the invoice number to it     (failure absorbed)

Steps 1-3 and 8 are required: any error there aborts the flow and no invoice id
is returned. Every other failure is logged and recorded on the report.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from connectors.erp_base import (
    ConnectionStatus,
    InvoiceConnector,
    InvoiceStatus,
    StepOutcome,
    StepStatus,
    SynthesisReport,
    SynthesisStep,
    register_connector,
)
from connectors.odoo.invoice_number import assign_invoice_number
from connectors.odoo.odoo_client import OdooConfig, OdooRpcClient
from connectors.odoo.odoo_errors import OdooError, ResolutionFailure
from connectors.odoo.odoo_models import (
    DONATION_PRODUCT_NAME,
    INCOME_ACCOUNT_STRATEGIES,
    JOURNAL_STRATEGIES,
    MODEL_ACCOUNT,
    MODEL_JOURNAL,
    MODEL_MOVE,
    MODEL_PARTNER,
    MODEL_PAYMENT_TERM,
    MODEL_PRODUCT,
    MOVE_STATE_CANCEL,
    MOVE_STATE_DRAFT,
    MOVE_STATE_POSTED,
    PAYMENT_TERM_STRATEGIES,
    RECEIVABLE_ACCOUNT_STRATEGIES,
    InvoiceLinePayload,
    InvoicePayload,
    LookupStrategy,
    PartnerPayload,
    ProductPayload,
)
from connectors.odoo.odoo_transport import XmlRpcTransport
from core.models import Campaign, Donor
from core.observability import get_logger, with_correlation
from core.sequence import SequenceGenerator

logger = get_logger(__name__)

DEFAULT_DONOR_MESSAGE = "Thank you for your support!"

_MOVE_STATES = {
    MOVE_STATE_DRAFT: InvoiceStatus.DRAFT,
    MOVE_STATE_POSTED: InvoiceStatus.POSTED,
    MOVE_STATE_CANCEL: InvoiceStatus.CANCELLED,
}


def build_invoice_payload(
    donor: Donor,
    campaign: Campaign,
    partner_id: int,
    product_id: int,
    account_id: Optional[int] = None,
    journal_id: Optional[int] = None,
    payment_term_id: Optional[int] = None,
) -> InvoicePayload:
    """Draft customer invoice for one donation.

    The custom invoice number is not part of the payload; it is written after
    posting so it never collides with Odoo's own numbering.
    """
    line = InvoiceLinePayload(
        product_id=product_id,
        name=f'Donation to "{campaign.title}" - {donor.name}',
        quantity=1,
        price_unit=donor.amount,
        account_id=account_id,
    )
    return InvoicePayload(
        partner_id=partner_id,
        ref=f"DONATION-{campaign.id[:8]}-{donor.id[:8]}",
        invoice_date=donor.donation_date.isoformat(),
        invoice_line_ids=[line],
        narration=(
            f'Donation of {donor.amount} to campaign: "{campaign.title}". '
            f"{donor.message or DEFAULT_DONOR_MESSAGE}"
        ),
        invoice_origin=f"Campaign: {campaign.title}",
        payment_reference=campaign.title,
        journal_id=journal_id,
        invoice_payment_term_id=payment_term_id,
    )


@register_connector("odoo")
class OdooInvoiceConnector(InvoiceConnector):
    """Odoo connector implementation.

    One instance serves one invoice synthesis. The session it opens is never
    refreshed; a session invalidated mid-flow fails the current step.

    Args:
        config: Odoo connection settings
        sequence: Per-day sequence generator for invoice numbers (optional)
        transport: Transport override, for tests and shared sessions
    """

    def __init__(
        self,
        config: OdooConfig,
        sequence: Optional[SequenceGenerator] = None,
        transport: Optional[XmlRpcTransport] = None,
    ):
        super().__init__()
        self.config = config
        self.sequence = sequence
        self._client = OdooRpcClient(config, transport)

    @property
    def client(self) -> OdooRpcClient:
        return self._client

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def ensure_session(self) -> StepOutcome:
        """Authenticate unless the client already holds a uid."""
        if self._client.is_authenticated:
            return StepOutcome(
                step=SynthesisStep.AUTHENTICATE,
                status=StepStatus.SUCCESS,
                record_id=self._client.uid,
                detail="cached session",
            )

        self._connection_status = ConnectionStatus.AUTHENTICATING
        try:
            uid = await self._client.authenticate()
        except OdooError:
            self._connection_status = ConnectionStatus.FAILED
            raise

        self._connection_status = ConnectionStatus.CONNECTED
        return StepOutcome(
            step=SynthesisStep.AUTHENTICATE,
            status=StepStatus.SUCCESS,
            record_id=uid,
        )

    async def test_connection(self) -> bool:
        """Authenticate and fetch the server version."""
        try:
            await self.ensure_session()
            info = await self._client.version()
        except OdooError as e:
            logger.warning(f"Odoo connection test failed: {e}")
            return False

        logger.info(f"Odoo reachable, server version {info.get('server_version', 'unknown')}")
        return True

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _search_strategies(
        self,
        model: str,
        strategies: List[LookupStrategy],
    ) -> Tuple[int, int, str]:
        """Try each (label, domain) in order and return the first hit.

        Returns:
            (record id, 1-based level, strategy label)

        Raises:
            ResolutionFailure: No strategy produced a record
        """
        attempts = []
        for level, (label, domain) in enumerate(strategies, start=1):
            try:
                ids = await self._client.search(model, domain)
            except OdooError as e:
                logger.debug(f"{model} lookup '{label}' errored: {e}")
                attempts.append(f"{label}: {e}")
                continue
            if ids:
                return ids[0], level, label
            attempts.append(f"{label}: no match")

        raise ResolutionFailure(f"No {model} record found ({'; '.join(attempts)})")

    async def _resolve_optional(
        self,
        step: SynthesisStep,
        model: str,
        strategies: List[LookupStrategy],
    ) -> StepOutcome:
        try:
            record_id, level, label = await self._search_strategies(model, strategies)
        except ResolutionFailure as e:
            logger.warning(f"{step.value}: {e}; continuing without it")
            return StepOutcome(step=step, status=StepStatus.UNRESOLVED, error=str(e))

        logger.info(f"{step.value}: {model} {record_id} via '{label}'")
        return StepOutcome(
            step=step,
            status=StepStatus.FOUND,
            record_id=record_id,
            level=level,
            detail=label,
        )

    async def resolve_receivable_account(self) -> Optional[int]:
        try:
            record_id, _, label = await self._search_strategies(
                MODEL_ACCOUNT, RECEIVABLE_ACCOUNT_STRATEGIES
            )
        except ResolutionFailure as e:
            logger.warning(f"Receivable account not found, partner keeps Odoo default: {e}")
            return None
        logger.debug(f"Receivable account {record_id} via '{label}'")
        return record_id

    async def resolve_income_account(self) -> StepOutcome:
        return await self._resolve_optional(
            SynthesisStep.RESOLVE_INCOME_ACCOUNT, MODEL_ACCOUNT, INCOME_ACCOUNT_STRATEGIES
        )

    async def resolve_journal(self) -> StepOutcome:
        return await self._resolve_optional(
            SynthesisStep.RESOLVE_JOURNAL, MODEL_JOURNAL, JOURNAL_STRATEGIES
        )

    async def resolve_payment_terms(self) -> StepOutcome:
        return await self._resolve_optional(
            SynthesisStep.RESOLVE_PAYMENT_TERMS, MODEL_PAYMENT_TERM, PAYMENT_TERM_STRATEGIES
        )

    # =========================================================================
    # Find-or-create
    # =========================================================================

    async def resolve_partner(self, name: str, email: Optional[str] = None) -> StepOutcome:
        """Reuse the partner named exactly name, or create it.

        A new partner gets a receivable account when one can be found.
        """
        existing = await self._client.search(MODEL_PARTNER, [["name", "=", name]])
        if existing:
            logger.info(f"Using existing partner {existing[0]}")
            return StepOutcome(
                step=SynthesisStep.RESOLVE_PARTNER,
                status=StepStatus.FOUND,
                record_id=existing[0],
            )

        receivable_id = await self.resolve_receivable_account()
        payload = PartnerPayload(
            name=name,
            email=email,
            property_account_receivable_id=receivable_id,
        )
        partner_id = await self._client.create(MODEL_PARTNER, payload.to_values())
        if partner_id is None:
            raise OdooError(f"Creating partner '{name}' returned no id")

        logger.info(f"Created partner {partner_id}")
        return StepOutcome(
            step=SynthesisStep.RESOLVE_PARTNER,
            status=StepStatus.CREATED,
            record_id=partner_id,
            detail=f"receivable account {receivable_id}" if receivable_id else None,
        )

    async def resolve_product(self) -> StepOutcome:
        """Reuse the "Donation" service product, or create it."""
        existing = await self._client.search(
            MODEL_PRODUCT, [["name", "=", DONATION_PRODUCT_NAME]]
        )
        if existing:
            return StepOutcome(
                step=SynthesisStep.RESOLVE_PRODUCT,
                status=StepStatus.FOUND,
                record_id=existing[0],
            )

        product_id = await self._client.create(MODEL_PRODUCT, ProductPayload().to_values())
        if product_id is None:
            raise OdooError("Creating the donation product returned no id")

        logger.info(f"Created donation product {product_id}")
        return StepOutcome(
            step=SynthesisStep.RESOLVE_PRODUCT,
            status=StepStatus.CREATED,
            record_id=product_id,
        )

    # =========================================================================
    # Invoice
    # =========================================================================

    def assign_number(self, donor: Donor) -> StepOutcome:
        assigned = assign_invoice_number(
            self.config.invoice_prefix,
            donor.timestamp,
            donor.id,
            self.sequence,
        )
        return StepOutcome(
            step=SynthesisStep.ASSIGN_NUMBER,
            status=StepStatus.SUCCESS,
            level=2 if assigned.used_fallback else 1,
            detail=assigned.number,
            error=assigned.error,
        )

    async def create_invoice(self, payload: InvoicePayload) -> StepOutcome:
        invoice_id = await self._client.create(MODEL_MOVE, payload.to_values())
        if invoice_id is None:
            raise OdooError("Creating the invoice returned no id")

        logger.info(f"Created draft invoice {invoice_id}")
        return StepOutcome(
            step=SynthesisStep.CREATE_INVOICE,
            status=StepStatus.CREATED,
            record_id=invoice_id,
        )

    async def post_invoice(self, invoice_id: int, invoice_date: str) -> StepOutcome:
        """Move the invoice out of draft, falling back level by level.

        1. action_post
        2. write state=posted with the accounting date
        3. write state=posted alone

        Never raises: exhausting all levels leaves the invoice in draft.
        """
        attempts: List[Tuple[str, Callable[[], Awaitable[object]]]] = [
            ("action_post", lambda: self._client.execute_action(
                MODEL_MOVE, "action_post", [invoice_id])),
            ("write state+date", lambda: self._client.write(
                MODEL_MOVE, [invoice_id], {"state": MOVE_STATE_POSTED, "date": invoice_date})),
            ("write state", lambda: self._client.write(
                MODEL_MOVE, [invoice_id], {"state": MOVE_STATE_POSTED})),
        ]

        errors = []
        for level, (label, attempt) in enumerate(attempts, start=1):
            try:
                await attempt()
            except OdooError as e:
                logger.warning(f"Posting via {label} failed: {e}")
                errors.append(f"{label}: {e}")
                continue

            logger.info(f"Invoice {invoice_id} posted via {label}")
            return StepOutcome(
                step=SynthesisStep.POST_INVOICE,
                status=StepStatus.SUCCESS,
                record_id=invoice_id,
                level=level,
                detail=label,
            )

        logger.warning(f"Invoice {invoice_id} left in draft, all posting attempts failed")
        return StepOutcome(
            step=SynthesisStep.POST_INVOICE,
            status=StepStatus.FAILED,
            record_id=invoice_id,
            error="; ".join(errors),
        )

    async def apply_invoice_number(self, invoice_id: int, number: str) -> StepOutcome:
        """Write the custom number to the invoice name. Never raises."""
        try:
            await self._client.write(MODEL_MOVE, [invoice_id], {"name": number})
        except OdooError as e:
            logger.warning(f"Could not set invoice number {number}: {e}")
            return StepOutcome(
                step=SynthesisStep.APPLY_NUMBER,
                status=StepStatus.FAILED,
                record_id=invoice_id,
                detail=number,
                error=str(e),
            )

        logger.info(f"Invoice {invoice_id} numbered {number}")
        return StepOutcome(
            step=SynthesisStep.APPLY_NUMBER,
            status=StepStatus.SUCCESS,
            record_id=invoice_id,
            detail=number,
        )

    async def get_invoice_status(self, invoice_id: int) -> Optional[InvoiceStatus]:
        """Read the invoice state from Odoo."""
        try:
            await self.ensure_session()
            records = await self._client.read(MODEL_MOVE, [invoice_id], ["state"])
        except OdooError as e:
            logger.warning(f"Could not read status of invoice {invoice_id}: {e}")
            return None

        if not records:
            return None
        return _MOVE_STATES.get(records[0].get("state"), InvoiceStatus.UNKNOWN)

    # =========================================================================
    # Synthesis
    # =========================================================================

    async def _required(self, report: SynthesisReport, step: SynthesisStep, work) -> StepOutcome:
        with with_correlation(step=step.value):
            logger.debug(f"{step.value} started")
            try:
                outcome = await work
            except Exception as e:
                report.add(StepOutcome(step=step, status=StepStatus.FAILED, error=str(e)))
                raise
            return report.add(outcome)

    async def _optional(self, report: SynthesisReport, step: SynthesisStep, work) -> StepOutcome:
        with with_correlation(step=step.value):
            logger.debug(f"{step.value} started")
            return report.add(await work)

    async def _synthesize(self, donor: Donor, campaign: Campaign, report: SynthesisReport) -> None:
        await self._required(report, SynthesisStep.AUTHENTICATE, self.ensure_session())

        partner = await self._required(
            report, SynthesisStep.RESOLVE_PARTNER, self.resolve_partner(donor.name, donor.email)
        )
        product = await self._required(
            report, SynthesisStep.RESOLVE_PRODUCT, self.resolve_product()
        )

        account = await self._optional(
            report, SynthesisStep.RESOLVE_INCOME_ACCOUNT, self.resolve_income_account()
        )
        journal = await self._optional(
            report, SynthesisStep.RESOLVE_JOURNAL, self.resolve_journal()
        )
        terms = await self._optional(
            report, SynthesisStep.RESOLVE_PAYMENT_TERMS, self.resolve_payment_terms()
        )

        # SQLite work stays off the event loop
        numbered = report.add(await asyncio.to_thread(self.assign_number, donor))
        report.invoice_number = numbered.detail

        payload = build_invoice_payload(
            donor,
            campaign,
            partner_id=partner.record_id,
            product_id=product.record_id,
            account_id=account.record_id,
            journal_id=journal.record_id,
            payment_term_id=terms.record_id,
        )
        created = await self._required(
            report, SynthesisStep.CREATE_INVOICE, self.create_invoice(payload)
        )
        report.invoice_id = created.record_id
        report.invoice_status = InvoiceStatus.DRAFT

        with with_correlation(invoice_id=created.record_id):
            posted = await self._optional(
                report,
                SynthesisStep.POST_INVOICE,
                self.post_invoice(created.record_id, payload.invoice_date),
            )
            if posted.ok:
                report.invoice_status = InvoiceStatus.POSTED

            await self._optional(
                report,
                SynthesisStep.APPLY_NUMBER,
                self.apply_invoice_number(created.record_id, report.invoice_number),
            )

    async def synthesize_invoice_with_report(
        self,
        donor: Donor,
        campaign: Campaign,
    ) -> SynthesisReport:
        report = SynthesisReport(donor_id=donor.id, campaign_id=campaign.id)

        with with_correlation(donor_id=donor.id, campaign_id=campaign.id):
            logger.info(f"Synthesizing invoice for donation of {donor.amount} to '{campaign.title}'")
            try:
                await self._synthesize(donor, campaign, report)
            except Exception as e:
                report.error = f"{type(e).__name__}: {e}"
                logger.exception(f"Invoice synthesis failed: {report.error}")
            else:
                logger.info(
                    f"Invoice {report.invoice_id} ({report.invoice_number}) "
                    f"{report.invoice_status.value.lower()}"
                )

        report.finished_at = datetime.utcnow()
        return report
