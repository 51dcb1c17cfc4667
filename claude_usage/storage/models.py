"""
Data models for the storage layer.

Defines usage records read from the Claude Code logs and the rows
produced by aggregating them.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from claude_usage.core.token_counter import TokenUsage


@dataclass(frozen=True)
class UsageRecord:
    """One assistant response that reported token usage.

    Records are derived from append-only log files and are never written back.
    """
    project: str
    timestamp: Optional[datetime] = None
    role: Optional[str] = None
    model: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    cost: Decimal = Decimal("0")

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_write_tokens=self.cache_write_tokens,
            cache_read_tokens=self.cache_read_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens


@dataclass
class AggregatedEntry:
    """Summary row for a project, or for a project on one calendar day.

    ``timestamp`` is the latest timestamp seen in the group. ``model`` is the
    single model name, ``"N models"`` when several were used, or ``""``.
    """
    project: str
    timestamp: Optional[datetime] = None
    role: Optional[str] = None
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    cost: Decimal = Decimal("0")
    message_count: int = 0
    date: Optional[str] = None
    first_timestamp: Optional[datetime] = None

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_write_tokens
            + self.cache_read_tokens
        )
