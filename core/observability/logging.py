"""
Structured Logging with Correlation IDs

Every record emitted through get_logger() is stamped with the correlation
context active at the call site:
- donor_id / campaign_id: the donation being invoiced
- invoice_id: the account.move created for it, once known
- workflow_id / workflow_run_id / activity_name: the Temporal execution, if any
- step: the synthesis step currently running

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(donor_id="don-001", campaign_id="camp_123"):
        logger.info("Creating invoice")
        logger.info("Posted", extra_fields={"level": 2})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, MutableMapping, Optional, Tuple


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """IDs tying a log line to one donation's invoice synthesis."""
    donor_id: Optional[str] = None
    campaign_id: Optional[str] = None
    invoice_id: Optional[int] = None
    workflow_id: Optional[str] = None
    workflow_run_id: Optional[str] = None
    activity_name: Optional[str] = None
    step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the non-None kwargs applied on top."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def short_label(self) -> str:
        """donor/campaign/workflow/inv:N, or "-" when empty."""
        parts = [p for p in (self.donor_id, self.campaign_id) if p]
        if self.workflow_id:
            parts.append(self.workflow_id[:12])
        if self.invoice_id is not None:
            parts.append(f"inv:{self.invoice_id}")
        return "/".join(parts) or "-"


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


@contextmanager
def with_correlation(**ids) -> Iterator[CorrelationContext]:
    """Scope correlation IDs to a block; the outer context comes back on exit.

    Each asyncio task runs in a copy of the context, so concurrent donations
    never see each other's IDs.
    """
    token = _correlation_context.set(get_correlation_context().merge(**ids))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


def _record_context(record: logging.LogRecord) -> CorrelationContext:
    # Stamped by CorrelatedLogger; records from other loggers use the live context
    return getattr(record, "correlation", None) or get_correlation_context()


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    {"timestamp": "2024-08-01T12:00:00.000Z", "level": "INFO",
     "logger": "connectors.odoo.odoo_connector", "message": "...",
     "donor_id": "don-001", "invoice_id": 42}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_record_context(record).to_dict())
        payload.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """2024-08-01 12:00:00 [INFO ] connectors.odoo.odoo_connector [don-001/camp_123/inv:42]: ..."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line = (
            f"{created:%Y-%m-%d %H:%M:%S} [{record.levelname:5}] {record.name} "
            f"[{_record_context(record).short_label()}]: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """Adapter that stamps the correlation context onto each record.

    Accepts an extra_fields mapping on any call; the JSON formatter merges it
    into the output object.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["correlation"] = get_correlation_context()
        extra["extra_fields"] = kwargs.pop("extra_fields", None) or {}
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None

_APP_LOGGERS = ("activities", "workflows", "api", "connectors", "core")
_NOISY_LOGGERS = ("aiohttp", "httpx", "uvicorn.access")


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_temporal: bool = True,
) -> None:
    """Install the stdout handler on the root logger.

    get_logger() calls this with defaults on first use, so entry points that
    want JSON or another level call it again; the same handler is reused.

    Args:
        level: Level for the root logger and the application packages
        json_format: JSON lines instead of human-readable text
        include_temporal: Also surface temporalio's INFO logs
    """
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        logging.getLogger().addHandler(_handler)

    _handler.setLevel(level)
    _handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())
    logging.getLogger().setLevel(level)

    for name in _APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for name, configuring logging on first use."""
    if name not in _loggers:
        if _handler is None:
            configure_logging()
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]
