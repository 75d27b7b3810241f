"""Shared field types and storage helpers for canteen models."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def _money_to_json(value: Decimal) -> int | float:
    """Serialize money as a JSON number; whole amounts stay integers."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Currency amounts are kept as Decimal (DynamoDB rejects floats) and emitted
# to API consumers as plain numbers.
Money = Annotated[Decimal, PlainSerializer(_money_to_json, when_used="json")]

# API payloads use camelCase names; Python code uses the field names.
CAMEL_CASE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def to_storage_timestamp(value: datetime) -> str:
    """Format a datetime as a fixed-width UTC ISO-8601 string.

    Fixed width keeps lexicographic order equal to chronological order, which
    range conditions on DynamoDB string attributes rely on.

    Args:
        value: Timezone-aware datetime (naive values are treated as UTC)

    Returns:
        str: e.g. ``2024-01-15T10:30:00.000000+00:00``
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_storage_timestamp(value: str) -> datetime:
    """Parse a timestamp written by :func:`to_storage_timestamp`."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
