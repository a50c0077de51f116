"""Odoo data models.

Remote model names, lookup strategies, and the pydantic payloads sent to
Odoo's create/write. These are Odoo-specific and separate from the donation
records in /core/models/.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field


# =============================================================================
# Remote Models
# =============================================================================

MODEL_PARTNER = "res.partner"
MODEL_PRODUCT = "product.product"
MODEL_ACCOUNT = "account.account"
MODEL_JOURNAL = "account.journal"
MODEL_PAYMENT_TERM = "account.payment.term"
MODEL_MOVE = "account.move"

DONATION_PRODUCT_NAME = "Donation"

# Odoo move state -> normalized status key
MOVE_STATE_DRAFT = "draft"
MOVE_STATE_POSTED = "posted"
MOVE_STATE_CANCEL = "cancel"


# =============================================================================
# Lookup Strategies
# =============================================================================
# Ordered (label, domain) pairs. The first strategy returning a record wins.
# Field names differ across Odoo versions, so a strategy that faults is
# treated the same as one that matches nothing.

LookupStrategy = Tuple[str, List[Any]]

RECEIVABLE_ACCOUNT_STRATEGIES: List[LookupStrategy] = [
    ("account_type=asset_receivable", [["account_type", "=", "asset_receivable"]]),
    ("internal_type=receivable", [["internal_type", "=", "receivable"]]),
]

INCOME_ACCOUNT_STRATEGIES: List[LookupStrategy] = [
    ("account_type=income", [["account_type", "=", "income"]]),
    ("code=like 4%", [["code", "=like", "4%"]]),
    ("name ilike revenue", [["name", "ilike", "revenue"]]),
    ("internal_type=other", [["internal_type", "=", "other"]]),
    ("user_type_id.name ilike income", [["user_type_id.name", "ilike", "income"]]),
]

JOURNAL_STRATEGIES: List[LookupStrategy] = [
    ("type=sale", [["type", "=", "sale"]]),
    ("any journal", []),
]

PAYMENT_TERM_STRATEGIES: List[LookupStrategy] = [
    ("name ilike immediate", [["name", "ilike", "immediate"]]),
    ("any payment term", []),
]


# =============================================================================
# Payloads
# =============================================================================

class OdooPayload(BaseModel):
    """Base model for values sent to Odoo create/write."""

    def to_values(self) -> Dict[str, Any]:
        """Field values for the remote call. Unset optional fields are omitted."""
        return self.model_dump(exclude_none=True)


class PartnerPayload(OdooPayload):
    """Individual donor contact.

    Maps to: res.partner
    """
    name: str
    is_company: bool = False
    email: Optional[str] = None
    type: str = "contact"
    property_account_receivable_id: Optional[int] = None


class ProductPayload(OdooPayload):
    """The single service product every donation line uses.

    Maps to: product.product
    """
    name: str = DONATION_PRODUCT_NAME
    type: str = "service"
    sale_ok: bool = True
    purchase_ok: bool = False
    list_price: float = 0.0
    description_sale: str = "Charitable donation"


class InvoiceLinePayload(OdooPayload):
    """One invoice line.

    Maps to: account.move.line (created inline on the move)
    """
    product_id: int
    name: str
    quantity: int = 1
    price_unit: Union[int, float]
    account_id: Optional[int] = None


class InvoicePayload(OdooPayload):
    """Customer invoice header plus its lines.

    Maps to: account.move with move_type out_invoice
    """
    partner_id: int
    move_type: str = "out_invoice"
    ref: str
    invoice_date: str = Field(..., description="ISO date YYYY-MM-DD")
    invoice_line_ids: List[InvoiceLinePayload] = Field(default_factory=list)
    narration: str
    invoice_origin: str
    payment_reference: Optional[str] = None
    journal_id: Optional[int] = None
    invoice_payment_term_id: Optional[int] = None

    def to_values(self) -> Dict[str, Any]:
        values = self.model_dump(exclude_none=True, exclude={"invoice_line_ids"})
        # (0, 0, values) is Odoo's "create this line" command
        values["invoice_line_ids"] = [
            [0, 0, line.to_values()] for line in self.invoice_line_ids
        ]
        return values
