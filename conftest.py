"""Shared pytest fixtures.

StubOdoo is an in-memory Odoo that speaks the XML-RPC wire dialect. It plugs
in as the transport, so every test exercises the real codec and RPC client.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from connectors.odoo.odoo_client import OdooConfig
from connectors.odoo.odoo_connector import OdooInvoiceConnector
from connectors.odoo.odoo_errors import TransportError
from connectors.odoo.odoo_transport import XmlRpcTransport
from connectors.odoo.xmlrpc_codec import dumps_fault, dumps_response, loads_request, to_python
from core.models import Campaign, Donor
from core.sequence import InMemoryDailySequence


# 2024-08-01T12:00:00Z
AUG_1_2024_NOON_MS = 1722513600000


@dataclass
class RpcCall:
    """One call received by the stub."""
    service: str               # "common" or "object"
    method: str                # authenticate / version / model method
    model: Optional[str] = None
    args: List[Any] = field(default_factory=list)

    @property
    def fields(self) -> List[str]:
        """Domain fields of a search, value keys of a create or write."""
        if self.method == "search" and self.args:
            return [clause[0] for clause in self.args[0] if isinstance(clause, list) and clause]
        if self.method == "create" and self.args:
            return list(self.args[0])
        if self.method == "write" and len(self.args) > 1:
            return list(self.args[1])
        return []


@dataclass
class FaultRule:
    model: Optional[str]
    method: str
    field: Optional[str]
    code: int
    message: str

    def matches(self, call: RpcCall) -> bool:
        if self.model is not None and call.model != self.model:
            return False
        if call.method != self.method:
            return False
        return self.field is None or self.field in call.fields


def _like(pattern: str) -> "re.Pattern":
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$")


def _clause_matches(record: Dict[str, Any], clause: List[Any]) -> bool:
    name, op, value = clause
    actual = record.get(name)
    if op == "=":
        return actual == value
    if op == "ilike":
        return actual is not None and str(value).lower() in str(actual).lower()
    if op == "=like":
        return actual is not None and bool(_like(str(value)).match(str(actual)))
    raise ValueError(f"Stub does not support operator {op!r}")


class StubOdoo(XmlRpcTransport):
    """In-memory Odoo server behind the transport seam."""

    def __init__(
        self,
        database: str = "amal",
        username: str = "bot@amal.test",
        password: str = "s3cret",
        uid: int = 2,
    ):
        self.database = database
        self.username = username
        self.password = password
        self.uid = uid
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self.calls: List[RpcCall] = []
        self.fault_rules: List[FaultRule] = []
        self.refuse_connections = False
        self.session_valid = True
        self._next_id = 100

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def seed(self, model: str, **values) -> int:
        """Insert a record directly and return its id."""
        self._next_id += 1
        self.records.setdefault(model, {})[self._next_id] = dict(values)
        return self._next_id

    def fail(
        self,
        method: str,
        model: Optional[str] = None,
        field: Optional[str] = None,
        code: int = 2,
        message: str = "Stub fault",
    ) -> None:
        """Answer matching calls with a fault envelope.

        field narrows the rule to calls whose domain (search) or values
        (create, write) mention that field.
        """
        self.fault_rules.append(FaultRule(model, method, field, code, message))

    def records_of(self, model: str) -> Dict[int, Dict[str, Any]]:
        return self.records.get(model, {})

    def calls_to(self, model: str, method: str) -> List[RpcCall]:
        return [c for c in self.calls if c.model == model and c.method == method]

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def post(self, url: str, body: str) -> str:
        if self.refuse_connections:
            raise TransportError(
                f"Request to {url} failed: connect ECONNREFUSED",
                url=url,
                cause=ConnectionRefusedError(111, "Connection refused"),
            )

        method, params = loads_request(body)
        values = [to_python(p) for p in params]

        if url.endswith("/xmlrpc/2/common"):
            return self._common(method, values)
        if url.endswith("/xmlrpc/2/object") and method == "execute_kw":
            return self._execute_kw(values)
        return dumps_fault(1, f"Unknown endpoint or method: {url} {method}")

    def _common(self, method: str, values: List[Any]) -> str:
        self.calls.append(RpcCall("common", method, args=values))
        if method == "version":
            return dumps_response({"server_version": "17.0", "protocol_version": 1})
        if method == "authenticate":
            database, login, password = values[0], values[1], values[2]
            ok = (database, login, password) == (self.database, self.username, self.password)
            return dumps_response(self.uid if ok else False)
        return dumps_fault(1, f"Method not found: {method}")

    def _execute_kw(self, values: List[Any]) -> str:
        database, uid, password, model, method, args = values[:6]
        call = RpcCall("object", method, model, args)
        self.calls.append(call)

        if not self.session_valid or (database, uid, password) != (self.database, self.uid, self.password):
            return dumps_fault(3, "Access Denied")

        for rule in self.fault_rules:
            if rule.matches(call):
                return dumps_fault(rule.code, rule.message)

        handler = getattr(self, f"_do_{method}", None)
        if handler is None:
            return dumps_fault(1, f"The method '{model}.{method}' does not exist")
        return dumps_response(handler(model, args))

    def _do_search(self, model: str, args: List[Any]) -> List[int]:
        domain = args[0]
        return [
            record_id
            for record_id, record in self.records_of(model).items()
            if all(_clause_matches(record, clause) for clause in domain)
        ]

    def _do_create(self, model: str, args: List[Any]) -> int:
        values = dict(args[0])
        if model == "account.move":
            values.setdefault("state", "draft")
        return self.seed(model, **values)

    def _do_write(self, model: str, args: List[Any]) -> bool:
        ids, values = args
        for record_id in ids:
            self.records_of(model)[record_id].update(values)
        return True

    def _do_read(self, model: str, args: List[Any]) -> List[Dict[str, Any]]:
        ids, fields = args
        rows = []
        for record_id in ids:
            record = self.records_of(model).get(record_id)
            if record is not None:
                rows.append({"id": record_id, **{f: record.get(f, False) for f in fields}})
        return rows

    def _do_action_post(self, model: str, args: List[Any]) -> bool:
        for record_id in args[0]:
            self.records_of(model)[record_id]["state"] = "posted"
        return True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def stub_odoo() -> StubOdoo:
    return StubOdoo()


@pytest.fixture
def odoo_config(stub_odoo) -> OdooConfig:
    return OdooConfig(
        base_url="http://odoo.test/",
        username=stub_odoo.username,
        password=stub_odoo.password,
        database=stub_odoo.database,
    )


@pytest.fixture
def sequence() -> InMemoryDailySequence:
    return InMemoryDailySequence()


@pytest.fixture
def connector(odoo_config, sequence, stub_odoo) -> OdooInvoiceConnector:
    return OdooInvoiceConnector(odoo_config, sequence=sequence, transport=stub_odoo)


@pytest.fixture
def donor() -> Donor:
    return Donor(
        id="don_7a1c9e2b44",
        name="Ahmad S.",
        amount=50000,
        email="ahmad@example.com",
        timestamp=AUG_1_2024_NOON_MS,
    )


@pytest.fixture
def campaign() -> Campaign:
    return Campaign(id="camp_12345678", title="Bantu Sekolah")
