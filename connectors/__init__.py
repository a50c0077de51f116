"""Invoicing Connectors - Pluggable accounting system integrations.

This package contains the abstract invoicing interface and concrete
implementations for specific accounting systems (Odoo, ...).

Donation records are system-neutral. This package handles:
- System-specific authentication
- Master data resolution (customer, product, accounts, journal, terms)
- Invoice creation, posting and numbering
- Wire protocol communication

To add a new accounting system:
1. Create a new folder (e.g., xero/)
2. Implement the InvoiceConnector interface
3. Register using @register_connector decorator
"""

from connectors.erp_base import (
    # Core interface
    InvoiceConnector,
    ConnectionStatus,
    InvoiceStatus,

    # Outcome types
    SynthesisStep,
    StepStatus,
    StepOutcome,
    SynthesisReport,

    # Factory functions
    create_connector,
    register_connector,
    list_available_connectors,
)

# Importing the implementations registers them
from connectors.odoo import OdooInvoiceConnector

__all__ = [
    # Core interface
    "InvoiceConnector",
    "ConnectionStatus",
    "InvoiceStatus",

    # Outcome types
    "SynthesisStep",
    "StepStatus",
    "StepOutcome",
    "SynthesisReport",

    # Implementations
    "OdooInvoiceConnector",

    # Factory
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
