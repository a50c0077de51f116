"""Odoo XML-RPC Client.

Stateful session wrapper over the transport and codec:
- authenticate once against /xmlrpc/2/common and cache the uid
- route every model call through execute_kw on /xmlrpc/2/object

The cached uid is never refreshed. If the remote session is invalidated the
next call fails and the error is surfaced to the caller, without retry.

Usage:
    client = OdooRpcClient(OdooConfig(base_url=..., username=..., password=..., database=...))
    await client.authenticate()
    partner_ids = await client.search("res.partner", [["name", "=", "Ahmad S."]])
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from connectors.odoo.odoo_errors import (
    AuthenticationError,
    NotAuthenticatedError,
    RemoteFault,
)
from connectors.odoo.odoo_transport import OdooTransport, XmlRpcTransport
from connectors.odoo.xmlrpc_codec import (
    Fault,
    WireArray,
    WireBase64,
    WireBoolean,
    WireDateTime,
    WireDouble,
    WireInt,
    WireNil,
    WireString,
    WireStruct,
    WireValue,
    dumps_request,
    loads_response,
    to_python,
)
from core.observability import get_logger

logger = get_logger(__name__)

COMMON_ENDPOINT = "/xmlrpc/2/common"
OBJECT_ENDPOINT = "/xmlrpc/2/object"


@dataclass
class OdooConfig:
    """Connection settings for one Odoo database."""
    base_url: str
    username: str
    password: str
    database: str
    timeout_seconds: Optional[float] = None
    invoice_prefix: str = "ZIS"

    @property
    def common_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{COMMON_ENDPOINT}"

    @property
    def object_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{OBJECT_ENDPOINT}"


# =============================================================================
# Result Matchers
# =============================================================================

def record_ids(value: WireValue) -> List[int]:
    """Interpret a search result as a list of record ids.

    Anything that is not an array of integers yields an empty list.
    """
    if isinstance(value, WireArray):
        return [item.value for item in value.items if isinstance(item, WireInt)]
    if isinstance(value, (WireInt, WireString, WireDouble, WireBoolean,
                          WireStruct, WireDateTime, WireBase64, WireNil)):
        return []
    raise TypeError(f"Not a wire value: {type(value).__name__}")


def first_record_id(value: WireValue) -> Optional[int]:
    ids = record_ids(value)
    return ids[0] if ids else None


def created_id(value: WireValue) -> Optional[int]:
    """Interpret a create result. Newer servers may wrap the id in a list."""
    if isinstance(value, WireInt):
        return value.value
    if isinstance(value, WireArray):
        return first_record_id(value)
    if isinstance(value, (WireString, WireDouble, WireBoolean, WireStruct,
                          WireDateTime, WireBase64, WireNil)):
        return None
    raise TypeError(f"Not a wire value: {type(value).__name__}")


def is_truthy(value: WireValue) -> bool:
    """XML-RPC truthiness: false, 0, empty string/array/struct and nil are falsy."""
    if isinstance(value, WireBoolean):
        return value.value
    if isinstance(value, (WireInt, WireDouble)):
        return value.value != 0
    if isinstance(value, WireString):
        return value.value != ""
    if isinstance(value, WireArray):
        return len(value.items) > 0
    if isinstance(value, WireStruct):
        return len(value.members) > 0
    if isinstance(value, (WireDateTime, WireBase64)):
        return value.raw != ""
    if isinstance(value, WireNil):
        return False
    raise TypeError(f"Not a wire value: {type(value).__name__}")


# =============================================================================
# Client
# =============================================================================

class OdooRpcClient:
    """XML-RPC client for one Odoo database and user."""

    def __init__(self, config: OdooConfig, transport: Optional[XmlRpcTransport] = None):
        self.config = config
        self._transport = transport or OdooTransport(timeout_seconds=config.timeout_seconds)
        self._uid: Optional[int] = None

    @property
    def uid(self) -> Optional[int]:
        return self._uid

    @property
    def is_authenticated(self) -> bool:
        return self._uid is not None

    async def _invoke(self, url: str, method: str, params: Sequence[Any]) -> WireValue:
        """POST one call and unwrap its single return value.

        Raises:
            TransportError: Network/HTTP failure
            RemoteFault: The server answered with a fault
            MalformedResponseError: The body is not a methodResponse
        """
        body = dumps_request(method, params)
        response_text = await self._transport.post(url, body)
        decoded = loads_response(response_text)

        if isinstance(decoded, Fault):
            raise RemoteFault(decoded.code, decoded.message)

        if decoded.result is None:
            logger.warning(f"No result value in response to {method}, returning nil")
            return WireNil()
        return decoded.result

    async def version(self) -> Dict[str, Any]:
        """Server version info (unauthenticated)."""
        result = await self._invoke(self.config.common_url, "version", [])
        if isinstance(result, WireStruct):
            return {key: to_python(value) for key, value in result.members.items()}
        return {}

    async def authenticate(self) -> int:
        """Authenticate and cache the uid for the life of this client.

        Raises:
            AuthenticationError: The server returned a falsy uid or a fault
            TransportError: Network/HTTP failure
        """
        try:
            result = await self._invoke(
                self.config.common_url,
                "authenticate",
                [self.config.database, self.config.username, self.config.password, {}],
            )
        except RemoteFault as e:
            raise AuthenticationError(f"Authentication rejected: {e.fault_string}") from e

        if not isinstance(result, WireInt) or not is_truthy(result):
            raise AuthenticationError(
                f"Authentication failed for user '{self.config.username}' "
                f"on database '{self.config.database}'"
            )

        self._uid = result.value
        logger.info(f"Authenticated with Odoo, uid={self._uid}")
        return self._uid

    async def call(
        self,
        model: str,
        method: str,
        args: Sequence[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> WireValue:
        """Call method on model via execute_kw.

        Raises:
            NotAuthenticatedError: authenticate has not succeeded yet
        """
        if self._uid is None:
            raise NotAuthenticatedError(f"Cannot call {model}.{method} before authenticate")

        return await self._invoke(
            self.config.object_url,
            "execute_kw",
            [
                self.config.database,
                self._uid,
                self.config.password,
                model,
                method,
                list(args),
                kwargs or {},
            ],
        )

    # -------------------------------------------------------------------------
    # Convenience wrappers
    # -------------------------------------------------------------------------

    async def search(self, model: str, domain: List[Any]) -> List[int]:
        return record_ids(await self.call(model, "search", [domain]))

    async def create(self, model: str, values: Dict[str, Any]) -> Optional[int]:
        return created_id(await self.call(model, "create", [values]))

    async def write(self, model: str, ids: List[int], values: Dict[str, Any]) -> bool:
        return is_truthy(await self.call(model, "write", [ids, values]))

    async def read(self, model: str, ids: List[int], fields: List[str]) -> List[Dict[str, Any]]:
        result = await self.call(model, "read", [ids, fields])
        if not isinstance(result, WireArray):
            return []
        return [to_python(item) for item in result.items if isinstance(item, WireStruct)]

    async def execute_action(self, model: str, action: str, ids: List[int]) -> WireValue:
        """Run a record action such as action_post on ids."""
        return await self.call(model, action, [ids])
