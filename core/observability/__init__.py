"""
Observability Module for donation invoicing

Provides structured logging with correlation IDs (donor, campaign, invoice,
workflow) so one donation can be traced through invoice synthesis.
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
    StructuredFormatter,
    HumanReadableFormatter,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
    "StructuredFormatter",
    "HumanReadableFormatter",
]
