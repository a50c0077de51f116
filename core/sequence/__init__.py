"""Per-day invoice sequence generators."""

from core.sequence.daily_sequence import (
    SequenceGenerator,
    InMemoryDailySequence,
    SqliteDailySequence,
)

__all__ = [
    "SequenceGenerator",
    "InMemoryDailySequence",
    "SqliteDailySequence",
]
