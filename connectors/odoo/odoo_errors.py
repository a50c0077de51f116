"""Odoo integration errors.

Everything raised by the codec, transport and RPC client derives from
OdooError so callers can contain the whole integration with one except clause.
"""

from typing import Optional


class OdooError(Exception):
    """Base exception for Odoo integration errors."""
    pass


class TransportError(OdooError):
    """Network or HTTP-level failure (connection refused, non-2xx)."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: int = 0,
        response_body: str = "",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.response_body = response_body
        self.cause = cause


class RemoteFault(OdooError):
    """Application-level fault returned by the remote system."""

    def __init__(self, fault_code: int, fault_string: str):
        super().__init__(f"Odoo fault (code {fault_code}): {fault_string}")
        self.fault_code = fault_code
        self.fault_string = fault_string


class MalformedResponseError(OdooError):
    """Response body is not a well-formed methodResponse envelope."""
    pass


class AuthenticationError(OdooError):
    """authenticate returned no usable session id."""
    pass


class NotAuthenticatedError(OdooError):
    """An object call was attempted before authenticate succeeded."""
    pass


class ResolutionFailure(OdooError):
    """A best-effort metadata lookup found nothing usable.

    Only raised inside the invoice synthesizer's optional lookups and always
    absorbed there.
    """
    pass
