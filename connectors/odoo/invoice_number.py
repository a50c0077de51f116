"""Human-readable invoice numbers.

Format: PREFIX/YYYY/MM/DD/NNNNN, dated from the donation timestamp (UTC), not
from wall-clock time. NNNNN comes from a per-day sequence generator; when the
generator is missing or fails, a weaker number derived from the timestamp and
donor id keeps invoice creation unblocked.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from core.observability import get_logger
from core.sequence import SequenceGenerator

logger = get_logger(__name__)

SEQUENCE_WIDTH = 5
SEQUENCE_MODULUS = 100000


@dataclass(frozen=True)
class InvoiceNumber:
    """An assigned number and where its sequence came from."""
    number: str
    sequence: int
    used_fallback: bool = False
    error: Optional[str] = None


def _utc(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def sequence_date_key(timestamp_ms: int) -> str:
    """Per-day sequence key, YYYY-MM-DD in UTC."""
    return _utc(timestamp_ms).strftime("%Y-%m-%d")


def fallback_sequence(timestamp_ms: int, donor_id: str) -> int:
    return (timestamp_ms % SEQUENCE_MODULUS + len(donor_id)) % SEQUENCE_MODULUS


def format_invoice_number(prefix: str, timestamp_ms: int, sequence: int) -> str:
    """
    >>> format_invoice_number("ZIS", 1722513600000, 7)
    'ZIS/2024/08/01/00007'
    """
    day = _utc(timestamp_ms)
    return f"{prefix}/{day:%Y/%m/%d}/{sequence:0{SEQUENCE_WIDTH}d}"


def assign_invoice_number(
    prefix: str,
    timestamp_ms: int,
    donor_id: str,
    sequence: Optional[SequenceGenerator] = None,
) -> InvoiceNumber:
    """Draw the next sequence for the donation's day and format the number.

    Never raises: generator failures fall back to fallback_sequence.
    """
    error = None
    if sequence is not None:
        try:
            value = sequence.get_sequence(sequence_date_key(timestamp_ms))
            return InvoiceNumber(
                number=format_invoice_number(prefix, timestamp_ms, value),
                sequence=value,
            )
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.warning(f"Sequence generator failed, using fallback number: {error}")
    else:
        error = "no sequence generator configured"

    value = fallback_sequence(timestamp_ms, donor_id)
    return InvoiceNumber(
        number=format_invoice_number(prefix, timestamp_ms, value),
        sequence=value,
        used_fallback=True,
        error=error,
    )
