"""Abstract Invoicing Connector Interface.

This module defines the interface that accounting-system connectors implement
to turn a donation into a customer invoice. It is intentionally system-agnostic:
no Odoo specifics here.

Connectors implement this interface to:
1. Authenticate with their accounting system
2. Resolve or create the master data an invoice needs (customer, product, ...)
3. Create, post and number the invoice
4. Report what happened at each step

Key Design Principles:
- Invoice synthesis is best-effort: the public entry point never raises
- Every step produces a StepOutcome so callers can see which fallback fired
- System-specific implementations live in connector subfolders
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from core.models import Campaign, Donor


# =============================================================================
# Enums
# =============================================================================

class ConnectionStatus(str, Enum):
    """Session status with the accounting system."""
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    AUTHENTICATING = "AUTHENTICATING"
    FAILED = "FAILED"


class InvoiceStatus(str, Enum):
    """Status of an invoice document in the accounting system."""
    DRAFT = "DRAFT"           # Created but not posted
    POSTED = "POSTED"         # Posted to the ledger
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class SynthesisStep(str, Enum):
    """The ordered steps of invoice synthesis."""
    AUTHENTICATE = "AUTHENTICATE"
    RESOLVE_PARTNER = "RESOLVE_PARTNER"
    RESOLVE_PRODUCT = "RESOLVE_PRODUCT"
    RESOLVE_INCOME_ACCOUNT = "RESOLVE_INCOME_ACCOUNT"
    RESOLVE_JOURNAL = "RESOLVE_JOURNAL"
    RESOLVE_PAYMENT_TERMS = "RESOLVE_PAYMENT_TERMS"
    ASSIGN_NUMBER = "ASSIGN_NUMBER"
    CREATE_INVOICE = "CREATE_INVOICE"
    POST_INVOICE = "POST_INVOICE"
    APPLY_NUMBER = "APPLY_NUMBER"


class StepStatus(str, Enum):
    """How a single synthesis step ended."""
    SUCCESS = "SUCCESS"         # Action performed (authenticate, post, ...)
    FOUND = "FOUND"             # Existing record reused
    CREATED = "CREATED"         # New record created
    UNRESOLVED = "UNRESOLVED"   # Optional lookup found nothing; flow continues
    FAILED = "FAILED"           # Step failed; fatal only for required steps


# =============================================================================
# Outcome Models
# =============================================================================

class StepOutcome(BaseModel):
    """Structured result of one synthesis step.

    Attributes:
        step: Which step this is
        status: How it ended
        record_id: Record the step produced or reused, if any
        level: 1-based fallback level that produced the result
        detail: Which strategy or action succeeded, or the computed value
        error: Error absorbed or raised by the step
    """
    step: SynthesisStep
    status: StepStatus
    record_id: Optional[int] = None
    level: Optional[int] = Field(default=None, description="Fallback level that succeeded")
    detail: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.SUCCESS, StepStatus.FOUND, StepStatus.CREATED)


class SynthesisReport(BaseModel):
    """Everything that happened while synthesizing one donation's invoice."""
    donor_id: str
    campaign_id: str
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_status: InvoiceStatus = InvoiceStatus.UNKNOWN
    steps: List[StepOutcome] = Field(default_factory=list)
    error: Optional[str] = Field(default=None, description="Error that aborted the flow")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def add(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    def outcome(self, step: SynthesisStep) -> Optional[StepOutcome]:
        """Latest outcome recorded for step, if the flow reached it."""
        for recorded in reversed(self.steps):
            if recorded.step == step:
                return recorded
        return None

    @property
    def succeeded(self) -> bool:
        return self.invoice_id is not None


# =============================================================================
# Abstract Connector Interface
# =============================================================================

class InvoiceConnector(ABC):
    """Abstract base class for donation invoicing connectors.

    Implementations:
    - connectors/odoo/odoo_connector.py
    """

    connector_type: str = ""

    def __init__(self):
        self._connection_status = ConnectionStatus.DISCONNECTED

    @property
    def connection_status(self) -> ConnectionStatus:
        """Get current connection status."""
        return self._connection_status

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the accounting system is reachable and credentials work.

        Returns:
            True if connection is healthy
        """
        pass

    @abstractmethod
    async def synthesize_invoice_with_report(
        self,
        donor: Donor,
        campaign: Campaign,
    ) -> SynthesisReport:
        """Run invoice synthesis and report every step.

        Must never raise: failures are recorded on the report.
        """
        pass

    async def synthesize_invoice(self, donor: Donor, campaign: Campaign) -> Optional[int]:
        """Create (and try to post) the invoice for one donation.

        Returns:
            The invoice record id, or None if no invoice was created
        """
        report = await self.synthesize_invoice_with_report(donor, campaign)
        return report.invoice_id

    @abstractmethod
    async def get_invoice_status(self, invoice_id: int) -> Optional[InvoiceStatus]:
        """Get the current status of an invoice.

        Returns:
            InvoiceStatus or None if it could not be read
        """
        pass

    def get_connector_name(self) -> str:
        """Get the name of this connector."""
        return self.connector_type


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str) -> Callable[[type], type]:
    """Decorator to register a connector implementation."""
    def decorator(cls):
        cls.connector_type = connector_type
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(connector_type: str, config: Any, **kwargs) -> InvoiceConnector:
    """Create a connector instance.

    Args:
        connector_type: Registered connector name (e.g. "odoo")
        config: Connector-specific configuration object
        **kwargs: Extra constructor arguments (sequence generator, transport)

    Returns:
        Configured connector instance

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config, **kwargs)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())
