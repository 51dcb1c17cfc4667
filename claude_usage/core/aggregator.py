"""
Aggregation of usage records into summary rows.

Groups are emitted in the order their keys were first seen; ordering the
result is left to the sorter.
"""

from dataclasses import dataclass, field
from datetime import timezone
from decimal import Decimal
from typing import Dict, Hashable, Iterable, List, Set

from claude_usage.storage.models import AggregatedEntry, UsageRecord

UNKNOWN_DATE = "unknown"


@dataclass
class _Group:
    entry: AggregatedEntry
    models: Set[str] = field(default_factory=set)


def day_key(record: UsageRecord) -> str:
    """UTC calendar date of a record as YYYY-MM-DD, or "unknown"."""
    if record.timestamp is None:
        return UNKNOWN_DATE
    return record.timestamp.astimezone(timezone.utc).date().isoformat()


def model_label(models: Set[str]) -> str:
    """Single model name, "N models" for several, "" for none."""
    if len(models) > 1:
        return f"{len(models)} models"
    if len(models) == 1:
        return next(iter(models))
    return ""


def _accumulate(group: _Group, record: UsageRecord) -> None:
    entry = group.entry
    entry.input_tokens += record.input_tokens
    entry.output_tokens += record.output_tokens
    entry.cache_write_tokens += record.cache_write_tokens
    entry.cache_read_tokens += record.cache_read_tokens
    entry.cost += record.cost
    entry.message_count += 1

    if record.model:
        group.models.add(record.model)

    if record.timestamp is not None:
        if entry.timestamp is None or record.timestamp > entry.timestamp:
            entry.timestamp = record.timestamp
        if entry.first_timestamp is None or record.timestamp < entry.first_timestamp:
            entry.first_timestamp = record.timestamp


def _aggregate(records: Iterable[UsageRecord], by_day: bool) -> List[AggregatedEntry]:
    groups: Dict[Hashable, _Group] = {}

    for record in records:
        project = record.project or ""
        date = day_key(record) if by_day else None
        key = (project, date)

        group = groups.get(key)
        if group is None:
            group = _Group(entry=AggregatedEntry(
                project=project,
                role=record.role,
                cost=Decimal("0"),
                date=date,
            ))
            groups[key] = group

        _accumulate(group, record)

    result = []
    for group in groups.values():
        group.entry.model = model_label(group.models)
        result.append(group.entry)
    return result


def aggregate_by_project_and_day(records: Iterable[UsageRecord]) -> List[AggregatedEntry]:
    """One row per (project, UTC day); undated records share an "unknown" day.

    Token fields and cost are summed, ``message_count`` counts the records
    and ``timestamp`` is the latest timestamp in the group.
    """
    return _aggregate(records, by_day=True)


def aggregate_by_project(records: Iterable[UsageRecord]) -> List[AggregatedEntry]:
    """One row per project across all dates.

    ``first_timestamp`` and ``timestamp`` hold the earliest and latest activity.
    """
    return _aggregate(records, by_day=False)


@dataclass(frozen=True)
class UsageSummary:
    """Totals across a record set."""
    input_tokens: int
    output_tokens: int
    cache_write_tokens: int
    cache_read_tokens: int
    cost: Decimal
    message_count: int
    models: List[str]

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_write_tokens
            + self.cache_read_tokens
        )


def summarize(records: Iterable[UsageRecord]) -> UsageSummary:
    """Sum every token category and cost, and collect the distinct models."""
    input_tokens = output_tokens = cache_write = cache_read = count = 0
    cost = Decimal("0")
    models: Set[str] = set()
    for record in records:
        input_tokens += record.input_tokens
        output_tokens += record.output_tokens
        cache_write += record.cache_write_tokens
        cache_read += record.cache_read_tokens
        cost += record.cost
        count += 1
        if record.model:
            models.add(record.model)
    return UsageSummary(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_write_tokens=cache_write,
        cache_read_tokens=cache_read,
        cost=cost,
        message_count=count,
        models=sorted(models),
    )
