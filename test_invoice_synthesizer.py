"""
Invoice Synthesizer Tests

Drives OdooInvoiceConnector end to end against StubOdoo:
1. Full donation → posted, numbered invoice
2. Find-or-create idempotency for partner and product
3. Optional lookups degrade to UNRESOLVED without blocking the invoice
4. Posting fallback levels and number assignment
5. The public entry point never raises
"""

import asyncio
import sqlite3
import threading
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from conftest import AUG_1_2024_NOON_MS
from connectors import create_connector, list_available_connectors
from connectors.erp_base import ConnectionStatus, InvoiceStatus, StepStatus, SynthesisStep
from connectors.odoo.odoo_connector import OdooInvoiceConnector, build_invoice_payload
from connectors.odoo.odoo_transport import XmlRpcTransport
from core.models import Donor
from core.sequence import InMemoryDailySequence


def _seed_chart(stub) -> dict:
    """A minimal modern (Odoo 16+) chart of accounts."""
    return {
        "receivable": stub.seed("account.account", name="Account Receivable",
                                code="121000", account_type="asset_receivable"),
        "income": stub.seed("account.account", name="Donation Income",
                            code="400000", account_type="income"),
        "journal": stub.seed("account.journal", name="Customer Invoices", type="sale"),
        "terms": stub.seed("account.payment.term", name="Immediate Payment"),
    }


def _invoice(stub, invoice_id):
    return stub.records_of("account.move")[invoice_id]


class BrokenSequence:
    def get_sequence(self, date_key: str) -> int:
        raise sqlite3.OperationalError("database is locked")


class ThreadRecordingSequence(InMemoryDailySequence):
    def __init__(self):
        super().__init__()
        self.threads = []

    def get_sequence(self, date_key: str) -> int:
        self.threads.append(threading.current_thread())
        return super().get_sequence(date_key)


class HtmlTransport(XmlRpcTransport):
    async def post(self, url: str, body: str) -> str:
        return "<html><body>Maintenance</body></html>"


class TestEndToEnd:
    """Donation to posted invoice."""

    def test_creates_posted_numbered_invoice(self, connector, stub_odoo, donor, campaign):
        chart = _seed_chart(stub_odoo)

        invoice_id = asyncio.run(connector.synthesize_invoice(donor, campaign))

        assert isinstance(invoice_id, int)
        invoice = _invoice(stub_odoo, invoice_id)

        partner = stub_odoo.records_of("res.partner")[invoice["partner_id"]]
        assert partner == {
            "name": "Ahmad S.",
            "is_company": False,
            "email": "ahmad@example.com",
            "type": "contact",
            "property_account_receivable_id": chart["receivable"],
        }

        [(product_id, product)] = stub_odoo.records_of("product.product").items()
        assert product["name"] == "Donation"
        assert product["type"] == "service"
        assert product["sale_ok"] is True
        assert product["purchase_ok"] is False

        assert invoice["move_type"] == "out_invoice"
        assert invoice["ref"] == "DONATION-camp_123-don_7a1c"
        assert invoice["invoice_date"] == "2024-08-01"
        assert invoice["invoice_line_ids"] == [[0, 0, {
            "product_id": product_id,
            "name": 'Donation to "Bantu Sekolah" - Ahmad S.',
            "quantity": 1,
            "price_unit": 50000,
            "account_id": chart["income"],
        }]]
        assert isinstance(invoice["invoice_line_ids"][0][2]["price_unit"], int)
        assert invoice["narration"] == (
            'Donation of 50000 to campaign: "Bantu Sekolah". Thank you for your support!'
        )
        assert invoice["invoice_origin"] == "Campaign: Bantu Sekolah"
        assert invoice["payment_reference"] == "Bantu Sekolah"
        assert invoice["journal_id"] == chart["journal"]
        assert invoice["invoice_payment_term_id"] == chart["terms"]
        assert invoice["state"] == "posted"
        assert invoice["name"] == "ZIS/2024/08/01/00001"

    def test_number_is_applied_after_posting_not_at_creation(self, connector, stub_odoo, donor, campaign):
        _seed_chart(stub_odoo)

        asyncio.run(connector.synthesize_invoice(donor, campaign))

        [create_call] = stub_odoo.calls_to("account.move", "create")
        assert "name" not in create_call.args[0]

        post_index = stub_odoo.calls.index(stub_odoo.calls_to("account.move", "action_post")[0])
        [name_write] = [c for c in stub_odoo.calls_to("account.move", "write") if "name" in c.fields]
        assert stub_odoo.calls.index(name_write) > post_index

    def test_report_records_every_step_in_order(self, connector, stub_odoo, donor, campaign):
        _seed_chart(stub_odoo)

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert [s.step for s in report.steps] == list(SynthesisStep)
        assert report.succeeded
        assert report.error is None
        assert report.invoice_status == InvoiceStatus.POSTED
        assert report.invoice_number == "ZIS/2024/08/01/00001"
        assert report.outcome(SynthesisStep.RESOLVE_PARTNER).status == StepStatus.CREATED
        assert report.outcome(SynthesisStep.RESOLVE_INCOME_ACCOUNT).level == 1
        assert report.outcome(SynthesisStep.POST_INVOICE).detail == "action_post"
        assert report.finished_at is not None

    def test_donor_message_and_fractional_amount(self, connector, stub_odoo, campaign):
        _seed_chart(stub_odoo)
        donor = Donor(id="don_frac", name="Siti", amount=125000.5,
                      message="Semoga berkah", timestamp=AUG_1_2024_NOON_MS)

        invoice_id = asyncio.run(connector.synthesize_invoice(donor, campaign))

        invoice = _invoice(stub_odoo, invoice_id)
        assert invoice["narration"] == 'Donation of 125000.5 to campaign: "Bantu Sekolah". Semoga berkah'
        assert invoice["invoice_line_ids"][0][2]["price_unit"] == 125000.5

    def test_invoice_date_uses_utc_day_of_donation(self, connector, stub_odoo, campaign):
        # 2024-07-31T23:30:00Z
        donor = Donor(id="don_late", name="Budi", amount=10, timestamp=1722468600000)

        invoice_id = asyncio.run(connector.synthesize_invoice(donor, campaign))

        invoice = _invoice(stub_odoo, invoice_id)
        assert invoice["invoice_date"] == "2024-07-31"
        assert invoice["name"].startswith("ZIS/2024/07/31/")


class TestIdempotentResolution:
    """Partner and product are found, not duplicated."""

    def test_second_donation_reuses_partner_and_product(self, odoo_config, stub_odoo, sequence, donor, campaign):
        _seed_chart(stub_odoo)
        second = Donor(id="don_second", name="Ahmad S.", amount=20000, timestamp=AUG_1_2024_NOON_MS)

        async def run():
            first_id = await OdooInvoiceConnector(
                odoo_config, sequence=sequence, transport=stub_odoo
            ).synthesize_invoice(donor, campaign)
            second_id = await OdooInvoiceConnector(
                odoo_config, sequence=sequence, transport=stub_odoo
            ).synthesize_invoice(second, campaign)
            return first_id, second_id

        first_id, second_id = asyncio.run(run())

        assert first_id != second_id
        assert len(stub_odoo.records_of("res.partner")) == 1
        assert len(stub_odoo.records_of("product.product")) == 1
        assert len(stub_odoo.calls_to("res.partner", "create")) == 1
        assert len(stub_odoo.calls_to("product.product", "create")) == 1
        assert _invoice(stub_odoo, first_id)["partner_id"] == _invoice(stub_odoo, second_id)["partner_id"]
        assert _invoice(stub_odoo, second_id)["name"] == "ZIS/2024/08/01/00002"

    def test_existing_partner_is_not_given_a_receivable_account(self, connector, stub_odoo, donor, campaign):
        _seed_chart(stub_odoo)
        partner_id = stub_odoo.seed("res.partner", name="Ahmad S.")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        outcome = report.outcome(SynthesisStep.RESOLVE_PARTNER)
        assert outcome.status == StepStatus.FOUND
        assert outcome.record_id == partner_id
        domains = [c.fields for c in stub_odoo.calls_to("account.account", "search")]
        assert ["account_type"] in domains
        assert all("internal_type" not in fields for fields in domains)
        assert stub_odoo.calls_to("res.partner", "create") == []

    def test_partner_match_is_exact(self, connector, stub_odoo, donor, campaign):
        stub_odoo.seed("res.partner", name="ahmad s.")

        asyncio.run(connector.synthesize_invoice(donor, campaign))

        names = sorted(p["name"] for p in stub_odoo.records_of("res.partner").values())
        assert names == ["Ahmad S.", "ahmad s."]


class TestOptionalLookups:
    """Income account, journal and payment terms never block the invoice."""

    def test_all_account_strategies_fault(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("search", model="account.account", message="Invalid field")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is not None
        income = report.outcome(SynthesisStep.RESOLVE_INCOME_ACCOUNT)
        assert income.status == StepStatus.UNRESOLVED
        assert income.record_id is None
        # 2 receivable strategies for the new partner, then 5 income strategies
        assert len(stub_odoo.calls_to("account.account", "search")) == 7

        invoice = _invoice(stub_odoo, report.invoice_id)
        assert "account_id" not in invoice["invoice_line_ids"][0][2]
        partner = stub_odoo.records_of("res.partner")[invoice["partner_id"]]
        assert "property_account_receivable_id" not in partner

    def test_legacy_field_names_fall_through_to_later_strategies(self, connector, stub_odoo, donor, campaign):
        # Odoo 13/14: no account_type field on accounts
        stub_odoo.fail("search", model="account.account", field="account_type")
        receivable = stub_odoo.seed("account.account", name="Receivable", code="1200",
                                    internal_type="receivable")
        income = stub_odoo.seed("account.account", name="Sales", code="4100", internal_type="other")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        outcome = report.outcome(SynthesisStep.RESOLVE_INCOME_ACCOUNT)
        assert outcome.record_id == income
        assert outcome.level == 2
        assert outcome.detail == "code=like 4%"
        partner = stub_odoo.records_of("res.partner")[_invoice(stub_odoo, report.invoice_id)["partner_id"]]
        assert partner["property_account_receivable_id"] == receivable

    def test_journal_and_terms_fall_back_to_any_record(self, connector, stub_odoo, donor, campaign):
        journal = stub_odoo.seed("account.journal", name="Bank", type="bank")
        terms = stub_odoo.seed("account.payment.term", name="30 Days")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.outcome(SynthesisStep.RESOLVE_JOURNAL).record_id == journal
        assert report.outcome(SynthesisStep.RESOLVE_JOURNAL).level == 2
        assert report.outcome(SynthesisStep.RESOLVE_PAYMENT_TERMS).record_id == terms
        assert report.outcome(SynthesisStep.RESOLVE_PAYMENT_TERMS).level == 2

    def test_nothing_resolvable_still_invoices(self, connector, stub_odoo, donor, campaign):
        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        for step in (SynthesisStep.RESOLVE_INCOME_ACCOUNT, SynthesisStep.RESOLVE_JOURNAL,
                     SynthesisStep.RESOLVE_PAYMENT_TERMS):
            assert report.outcome(step).status == StepStatus.UNRESOLVED
        invoice = _invoice(stub_odoo, report.invoice_id)
        assert "journal_id" not in invoice
        assert "invoice_payment_term_id" not in invoice


class TestPosting:
    """Draft → posted fallback chain."""

    def test_falls_back_to_write_with_date(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("action_post", model="account.move")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        posted = report.outcome(SynthesisStep.POST_INVOICE)
        assert posted.status == StepStatus.SUCCESS
        assert posted.level == 2
        invoice = _invoice(stub_odoo, report.invoice_id)
        assert invoice["state"] == "posted"
        assert invoice["date"] == "2024-08-01"

    def test_falls_back_to_plain_state_write(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("action_post", model="account.move")
        stub_odoo.fail("write", model="account.move", field="date")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        posted = report.outcome(SynthesisStep.POST_INVOICE)
        assert posted.level == 3
        assert posted.detail == "write state"
        assert report.invoice_status == InvoiceStatus.POSTED
        assert "date" not in _invoice(stub_odoo, report.invoice_id)

    def test_all_posting_paths_fail_keeps_draft_invoice(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("action_post", model="account.move")
        stub_odoo.fail("write", model="account.move", field="state")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is not None
        assert report.error is None
        assert report.invoice_status == InvoiceStatus.DRAFT
        assert report.outcome(SynthesisStep.POST_INVOICE).status == StepStatus.FAILED
        invoice = _invoice(stub_odoo, report.invoice_id)
        assert invoice["state"] == "draft"
        # number still applied
        assert invoice["name"] == "ZIS/2024/08/01/00001"

    def test_number_write_failure_keeps_invoice_id(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("write", model="account.move", field="name")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is not None
        assert report.outcome(SynthesisStep.APPLY_NUMBER).status == StepStatus.FAILED
        assert report.invoice_status == InvoiceStatus.POSTED


class TestInvoiceNumber:

    def test_number_uses_daily_sequence(self, odoo_config, stub_odoo, donor, campaign):
        sequence = InMemoryDailySequence(start={"2024-08-01": 6})
        connector = OdooInvoiceConnector(odoo_config, sequence=sequence, transport=stub_odoo)

        invoice_id = asyncio.run(connector.synthesize_invoice(donor, campaign))

        assert _invoice(stub_odoo, invoice_id)["name"] == "ZIS/2024/08/01/00007"

    def test_failing_sequence_falls_back(self, odoo_config, stub_odoo, donor, campaign):
        connector = OdooInvoiceConnector(odoo_config, sequence=BrokenSequence(), transport=stub_odoo)

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        numbered = report.outcome(SynthesisStep.ASSIGN_NUMBER)
        assert numbered.level == 2
        assert "database is locked" in numbered.error
        # timestamp % 100000 == 0, donor id has 14 characters
        assert report.invoice_number == "ZIS/2024/08/01/00014"
        assert report.invoice_id is not None

    def test_custom_prefix(self, odoo_config, stub_odoo, sequence, donor, campaign):
        odoo_config.invoice_prefix = "AMAL"
        connector = OdooInvoiceConnector(odoo_config, sequence=sequence, transport=stub_odoo)

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_number == "AMAL/2024/08/01/00001"

    def test_sequence_runs_off_the_event_loop_thread(self, odoo_config, stub_odoo, donor, campaign):
        sequence = ThreadRecordingSequence()
        connector = OdooInvoiceConnector(odoo_config, sequence=sequence, transport=stub_odoo)

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_number == "ZIS/2024/08/01/00001"
        assert len(sequence.threads) == 1
        assert sequence.threads[0] is not threading.main_thread()


class TestNeverRaises:
    """Required-step failures yield None, never an exception."""

    def test_connection_refused_on_authenticate(self, connector, stub_odoo, donor, campaign):
        stub_odoo.refuse_connections = True

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is None
        assert "ECONNREFUSED" in report.error
        assert [(s.step, s.status) for s in report.steps] == [
            (SynthesisStep.AUTHENTICATE, StepStatus.FAILED)
        ]
        assert connector.connection_status == ConnectionStatus.FAILED

    def test_bad_credentials(self, connector, stub_odoo, donor, campaign):
        stub_odoo.password = "rotated"

        assert asyncio.run(connector.synthesize_invoice(donor, campaign)) is None
        assert stub_odoo.calls_to("account.move", "create") == []

    def test_partner_lookup_fault_aborts(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("search", model="res.partner")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is None
        assert report.outcome(SynthesisStep.RESOLVE_PARTNER).status == StepStatus.FAILED
        assert stub_odoo.calls_to("product.product", "search") == []

    def test_product_create_fault_aborts(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("create", model="product.product")

        assert asyncio.run(connector.synthesize_invoice(donor, campaign)) is None
        assert stub_odoo.calls_to("account.move", "create") == []

    def test_invoice_create_fault_returns_none(self, connector, stub_odoo, donor, campaign):
        stub_odoo.fail("create", model="account.move", message="Missing required field")

        report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is None
        assert report.outcome(SynthesisStep.CREATE_INVOICE).status == StepStatus.FAILED
        assert "Missing required field" in report.error
        assert stub_odoo.calls_to("account.move", "action_post") == []

    def test_malformed_server_response(self, odoo_config, donor, campaign):
        connector = OdooInvoiceConnector(odoo_config, transport=HtmlTransport())

        assert asyncio.run(connector.synthesize_invoice(donor, campaign)) is None

    def test_unexpected_error_is_contained(self, connector, stub_odoo, donor, campaign):
        with patch.object(connector, "resolve_journal", AsyncMock(side_effect=RuntimeError("boom"))):
            report = asyncio.run(connector.synthesize_invoice_with_report(donor, campaign))

        assert report.invoice_id is None
        assert report.error == "RuntimeError: boom"


class TestConnectorApi:

    def test_get_invoice_status(self, connector, stub_odoo, donor, campaign):
        async def run():
            invoice_id = await connector.synthesize_invoice(donor, campaign)
            return await connector.get_invoice_status(invoice_id), await connector.get_invoice_status(999999)

        status, missing = asyncio.run(run())

        assert status == InvoiceStatus.POSTED
        assert missing is None

    def test_test_connection(self, connector, stub_odoo):
        assert asyncio.run(connector.test_connection()) is True
        assert connector.connection_status == ConnectionStatus.CONNECTED

    def test_test_connection_refused(self, connector, stub_odoo):
        stub_odoo.refuse_connections = True
        assert asyncio.run(connector.test_connection()) is False

    def test_registry(self, odoo_config, stub_odoo):
        assert "odoo" in list_available_connectors()
        created = create_connector("ODOO", odoo_config, transport=stub_odoo)
        assert isinstance(created, OdooInvoiceConnector)
        assert created.get_connector_name() == "odoo"
        with pytest.raises(ValueError):
            create_connector("sap", odoo_config)

    def test_payload_omits_unresolved_ids(self, donor, campaign):
        values = build_invoice_payload(donor, campaign, partner_id=1, product_id=2).to_values()

        assert "journal_id" not in values
        assert "invoice_payment_term_id" not in values
        assert values["invoice_line_ids"] == [[0, 0, {
            "product_id": 2,
            "name": 'Donation to "Bantu Sekolah" - Ahmad S.',
            "quantity": 1,
            "price_unit": 50000,
        }]]


class TestDonationRecords:

    def test_donor_is_immutable(self, donor):
        with pytest.raises(ValidationError):
            donor.amount = 1

        assert donor.amount == 50000

    def test_campaign_is_immutable(self, campaign):
        with pytest.raises(ValidationError):
            campaign.title = "Renamed"

    def test_records_are_hashable(self, donor, campaign):
        assert len({donor, donor.model_copy()}) == 1
        assert hash(campaign) == hash(campaign.model_copy())
