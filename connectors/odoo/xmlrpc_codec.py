"""XML-RPC Wire Codec.

Bidirectional mapping between Python values and the XML-RPC dialect spoken by
Odoo's /xmlrpc/2 endpoints.

Decoded values are a closed set of frozen dataclasses (WireValue) so every
consumer matches on the concrete kind instead of guessing at dynamic shapes:

    WireString | WireInt | WireDouble | WireBoolean | WireArray | WireStruct
    | WireDateTime | WireBase64 | WireNil

A fault envelope decodes to Fault and always wins over any value node that
happens to be present in the same document.

Usage:
    body = dumps_request("execute_kw", [db, uid, pwd, "res.partner", "search", [domain], {}])
    decoded = loads_response(response_text)
    if isinstance(decoded, Fault):
        ...
"""

import base64
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from connectors.odoo.odoo_errors import MalformedResponseError


XML_DECLARATION = '<?xml version="1.0"?>'
DATETIME_FORMAT = "%Y%m%dT%H:%M:%S"


# =============================================================================
# Wire Values
# =============================================================================

@dataclass(frozen=True)
class WireString:
    value: str


@dataclass(frozen=True)
class WireInt:
    value: int


@dataclass(frozen=True)
class WireDouble:
    value: float


@dataclass(frozen=True)
class WireBoolean:
    value: bool


@dataclass(frozen=True)
class WireArray:
    items: Tuple["WireValue", ...] = ()


@dataclass(frozen=True)
class WireStruct:
    members: Dict[str, "WireValue"] = field(default_factory=dict)

    def get(self, key: str, default: Optional["WireValue"] = None) -> Optional["WireValue"]:
        return self.members.get(key, default)


@dataclass(frozen=True)
class WireDateTime:
    """ISO 8601 timestamp, kept as the raw wire string."""
    raw: str


@dataclass(frozen=True)
class WireBase64:
    """Base64 payload, kept as the raw wire string."""
    raw: str


@dataclass(frozen=True)
class WireNil:
    pass


WireValue = Union[
    WireString,
    WireInt,
    WireDouble,
    WireBoolean,
    WireArray,
    WireStruct,
    WireDateTime,
    WireBase64,
    WireNil,
]

WIRE_TYPES = (
    WireString,
    WireInt,
    WireDouble,
    WireBoolean,
    WireArray,
    WireStruct,
    WireDateTime,
    WireBase64,
    WireNil,
)


@dataclass(frozen=True)
class Fault:
    """Remote fault variant of a decoded response."""
    code: int
    message: str


@dataclass(frozen=True)
class MethodResponse:
    """Successful response. result is None when the envelope carried no value."""
    result: Optional[WireValue] = None


# =============================================================================
# Python <-> WireValue
# =============================================================================

def from_python(value: Any) -> WireValue:
    """Convert a native Python value to its WireValue.

    bool is checked before int because bool is an int subclass.

    Raises:
        TypeError: If the value has no XML-RPC representation
    """
    if isinstance(value, WIRE_TYPES):
        return value
    if value is None:
        return WireNil()
    if isinstance(value, bool):
        return WireBoolean(value)
    if isinstance(value, int):
        return WireInt(value)
    if isinstance(value, (float, Decimal)):
        return WireDouble(float(value))
    if isinstance(value, str):
        return WireString(value)
    if isinstance(value, (bytes, bytearray)):
        return WireBase64(base64.b64encode(bytes(value)).decode("ascii"))
    if isinstance(value, (datetime, date)):
        return WireDateTime(value.strftime(DATETIME_FORMAT))
    if isinstance(value, dict):
        return WireStruct({str(k): from_python(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return WireArray(tuple(from_python(v) for v in value))
    raise TypeError(f"Cannot marshal {type(value).__name__} to XML-RPC")


def to_python(value: WireValue) -> Any:
    """Convert a WireValue back to plain Python values.

    Datetime and base64 values stay raw strings.
    """
    if isinstance(value, (WireString, WireInt, WireDouble, WireBoolean)):
        return value.value
    if isinstance(value, WireArray):
        return [to_python(item) for item in value.items]
    if isinstance(value, WireStruct):
        return {key: to_python(item) for key, item in value.members.items()}
    if isinstance(value, (WireDateTime, WireBase64)):
        return value.raw
    if isinstance(value, WireNil):
        return None
    raise TypeError(f"Not a wire value: {type(value).__name__}")


# =============================================================================
# Encoding
# =============================================================================

_XML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
    "\r": "&#13;",
}


def escape_xml(text: str) -> str:
    """Escape the five XML metacharacters.

    Carriage returns become a character reference; a literal CR would be
    normalized away by the receiving parser.
    """
    return "".join(_XML_ESCAPES.get(ch, ch) for ch in text)


def encode_value(value: Any) -> str:
    """Encode a value (native or WireValue) as a <value> fragment."""
    wire = from_python(value)

    if isinstance(wire, WireString):
        inner = f"<string>{escape_xml(wire.value)}</string>"
    elif isinstance(wire, WireBoolean):
        inner = f"<boolean>{1 if wire.value else 0}</boolean>"
    elif isinstance(wire, WireInt):
        inner = f"<int>{wire.value}</int>"
    elif isinstance(wire, WireDouble):
        inner = f"<double>{wire.value!r}</double>"
    elif isinstance(wire, WireArray):
        data = "".join(encode_value(item) for item in wire.items)
        inner = f"<array><data>{data}</data></array>"
    elif isinstance(wire, WireStruct):
        members = "".join(
            f"<member><name>{escape_xml(key)}</name>{encode_value(item)}</member>"
            for key, item in wire.members.items()
        )
        inner = f"<struct>{members}</struct>"
    elif isinstance(wire, WireDateTime):
        inner = f"<dateTime.iso8601>{escape_xml(wire.raw)}</dateTime.iso8601>"
    elif isinstance(wire, WireBase64):
        inner = f"<base64>{wire.raw}</base64>"
    elif isinstance(wire, WireNil):
        inner = "<nil/>"
    else:
        raise TypeError(f"Not a wire value: {type(wire).__name__}")

    return f"<value>{inner}</value>"


def dumps_request(method: str, params: Sequence[Any]) -> str:
    """Build a methodCall envelope, one <param> per positional parameter."""
    params_xml = "".join(f"<param>{encode_value(p)}</param>" for p in params)
    return (
        f"{XML_DECLARATION}\n"
        f"<methodCall><methodName>{escape_xml(method)}</methodName>"
        f"<params>{params_xml}</params></methodCall>"
    )


def dumps_response(value: Any) -> str:
    """Build a successful methodResponse envelope (server side)."""
    return (
        f"{XML_DECLARATION}\n"
        f"<methodResponse><params><param>{encode_value(value)}</param></params></methodResponse>"
    )


def dumps_fault(code: int, message: str) -> str:
    """Build a fault methodResponse envelope (server side)."""
    fault = encode_value({"faultCode": code, "faultString": message})
    return f"{XML_DECLARATION}\n<methodResponse><fault>{fault}</fault></methodResponse>"


# =============================================================================
# Decoding
# =============================================================================

def _parse_document(xml_text: Union[str, bytes], expected_root: str) -> ET.Element:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MalformedResponseError(f"Not well-formed XML: {e}") from e
    if root.tag != expected_root:
        raise MalformedResponseError(f"Expected <{expected_root}>, got <{root.tag}>")
    return root


def _raw_inner(value_node: ET.Element) -> WireString:
    """Fallback for shapes the codec does not recognise: the raw inner XML."""
    parts = [value_node.text or ""]
    for child in value_node:
        parts.append(ET.tostring(child, encoding="unicode"))
    return WireString("".join(parts).strip())


def decode_value(value_node: ET.Element) -> WireValue:
    """Decode a <value> element. Never raises on unknown shapes."""
    children = list(value_node)
    if not children:
        # Untyped <value>text</value> is a string per the dialect
        return WireString(value_node.text or "")

    node = children[0]
    tag = node.tag
    text = node.text or ""

    if tag == "string":
        return WireString(text)

    if tag in ("int", "i4", "i8"):
        try:
            return WireInt(int(text.strip()))
        except ValueError:
            return _raw_inner(value_node)

    if tag == "double":
        try:
            return WireDouble(float(text.strip()))
        except ValueError:
            return _raw_inner(value_node)

    if tag == "boolean":
        flag = text.strip()
        if flag in ("0", "1"):
            return WireBoolean(flag == "1")
        return _raw_inner(value_node)

    if tag == "array":
        data = node.find("data")
        if data is None:
            return WireArray(())
        return WireArray(tuple(decode_value(v) for v in data.findall("value")))

    if tag == "struct":
        members: Dict[str, WireValue] = {}
        for member in node.findall("member"):
            name = member.findtext("name", default="")
            member_value = member.find("value")
            members[name] = decode_value(member_value) if member_value is not None else WireNil()
        return WireStruct(members)

    if tag == "dateTime.iso8601":
        return WireDateTime(text.strip())

    if tag == "base64":
        return WireBase64(text.strip())

    if tag == "nil":
        return WireNil()

    return _raw_inner(value_node)


def _decode_fault(fault_node: ET.Element) -> Fault:
    value_node = fault_node.find("value")
    decoded = decode_value(value_node) if value_node is not None else WireStruct()

    code = 0
    message = "Unknown error"
    if isinstance(decoded, WireStruct):
        code_value = decoded.get("faultCode")
        if isinstance(code_value, WireInt):
            code = code_value.value
        elif isinstance(code_value, WireString) and code_value.value.strip().lstrip("-").isdigit():
            code = int(code_value.value.strip())

        message_value = decoded.get("faultString")
        if isinstance(message_value, WireString):
            message = message_value.value

    return Fault(code=code, message=message)


def loads_response(xml_text: Union[str, bytes]) -> Union[MethodResponse, Fault]:
    """Decode a methodResponse envelope.

    A fault marker short-circuits value parsing.

    Raises:
        MalformedResponseError: If the text is not a methodResponse document
    """
    root = _parse_document(xml_text, "methodResponse")

    fault_node = root.find("fault")
    if fault_node is not None:
        return _decode_fault(fault_node)

    value_node = root.find("params/param/value")
    if value_node is None:
        return MethodResponse(result=None)
    return MethodResponse(result=decode_value(value_node))


def loads_request(xml_text: Union[str, bytes]) -> Tuple[str, List[WireValue]]:
    """Decode a methodCall envelope into (method name, params) (server side)."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ValueError(f"Not well-formed XML: {e}") from e
    if root.tag != "methodCall":
        raise ValueError(f"Expected <methodCall>, got <{root.tag}>")

    method = (root.findtext("methodName") or "").strip()
    params = [decode_value(v) for v in root.findall("params/param/value")]
    return method, params
