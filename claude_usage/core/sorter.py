"""
Sorting of usage records and aggregated rows.

Works on anything exposing ``cost``, ``timestamp``, ``project`` and the four
token fields, so raw records and aggregated entries sort the same way.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, TypeVar

T = TypeVar("T")

VALID_FIELDS = ["cost", "time", "tokens", "project"]
VALID_ORDERS = ["asc", "desc"]

FIELD_DESCRIPTIONS = {
    "cost": "Sort by message cost",
    "time": "Sort by message timestamp",
    "tokens": "Sort by total token count",
    "project": "Sort by project name",
}

ORDER_DESCRIPTIONS = {
    "asc": "Ascending order (lowest to highest)",
    "desc": "Descending order (highest to lowest)",
}


class InvalidSortError(ValueError):
    """Raised for a sort field or order outside the allowed set."""


@dataclass(frozen=True)
class SortConfig:
    """Validated sort settings with display text."""
    field: str
    order: str
    field_description: str
    order_description: str
    icon: str


def validate_sort_field(sort_field: str) -> None:
    if sort_field not in VALID_FIELDS:
        raise InvalidSortError(
            f"Invalid sort field: {sort_field}. Valid options: {', '.join(VALID_FIELDS)}"
        )


def validate_sort_order(sort_order: str) -> None:
    if sort_order not in VALID_ORDERS:
        raise InvalidSortError(
            f"Invalid sort order: {sort_order}. Valid options: {', '.join(VALID_ORDERS)}"
        )


def get_sort_value(record: Any, sort_field: str) -> Any:
    """Key used to order a record by ``sort_field``.

    Missing costs sort as 0, missing timestamps as the epoch.
    """
    if sort_field == "cost":
        return record.cost or Decimal("0")
    if sort_field == "time":
        return record.timestamp.timestamp() if record.timestamp is not None else 0.0
    if sort_field == "tokens":
        return (
            (record.input_tokens or 0)
            + (record.output_tokens or 0)
            + (record.cache_write_tokens or 0)
            + (record.cache_read_tokens or 0)
        )
    if sort_field == "project":
        return (record.project or "").lower()
    return 0


def sort_records(records: Iterable[T], sort_field: str = "time", sort_order: str = "desc") -> List[T]:
    """Return a new list ordered by ``sort_field``; the input is left untouched.

    Raises:
        InvalidSortError: If the field or order is not supported
    """
    validate_sort_field(sort_field)
    validate_sort_order(sort_order)
    return sorted(
        records,
        key=lambda record: get_sort_value(record, sort_field),
        reverse=sort_order == "desc",
    )


def get_available_sort_fields() -> List[str]:
    return list(VALID_FIELDS)


def get_available_sort_orders() -> List[str]:
    return list(VALID_ORDERS)


def create_sort_config(sort_field: str = "time", sort_order: str = "desc") -> SortConfig:
    """Validate a field/order pair and describe it for display."""
    validate_sort_field(sort_field)
    validate_sort_order(sort_order)
    return SortConfig(
        field=sort_field,
        order=sort_order,
        field_description=FIELD_DESCRIPTIONS[sort_field],
        order_description=ORDER_DESCRIPTIONS[sort_order],
        icon="↑" if sort_order == "asc" else "↓",
    )
