"""Odoo connector.

Talks to Odoo's XML-RPC API (/xmlrpc/2/common and /xmlrpc/2/object) to turn
donations into posted customer invoices.
"""

from connectors.odoo.odoo_client import OdooConfig, OdooRpcClient
from connectors.odoo.odoo_connector import OdooInvoiceConnector, build_invoice_payload
from connectors.odoo.odoo_errors import (
    OdooError,
    TransportError,
    RemoteFault,
    MalformedResponseError,
    AuthenticationError,
    NotAuthenticatedError,
    ResolutionFailure,
)
from connectors.odoo.odoo_transport import OdooTransport, XmlRpcTransport

__all__ = [
    "OdooConfig",
    "OdooRpcClient",
    "OdooInvoiceConnector",
    "build_invoice_payload",
    "OdooTransport",
    "XmlRpcTransport",
    "OdooError",
    "TransportError",
    "RemoteFault",
    "MalformedResponseError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "ResolutionFailure",
]
