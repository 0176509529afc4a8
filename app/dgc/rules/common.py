# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Helpers shared by the policy-rule evaluators."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from app.dgc.exceptions import PolicyError
from app.dgc.models import RevocationSet

GENERIC = "GENERIC"


def utc_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def parse_date(record: Dict[str, Any], field: str) -> date:
    """Parse a ``YYYY-MM-DD`` field (a trailing time part is ignored)."""
    value = record.get(field)
    if not isinstance(value, str) or not value:
        raise PolicyError.rejected(f"missing {field}")
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise PolicyError.rejected(f"malformed {field} {value!r}") from None


def parse_datetime(record: Dict[str, Any], field: str) -> datetime:
    """Parse an ISO 8601 timestamp field; naive values are taken as UTC."""
    value = record.get(field)
    if not isinstance(value, str) or not value:
        raise PolicyError.rejected(f"missing {field}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise PolicyError.rejected(f"malformed {field} {value!r}") from None
    return utc_now(parsed)


def check_not_revoked(record: Dict[str, Any], revocation_set: RevocationSet) -> None:
    """Raise :class:`PolicyError` if the record's UVCI is revoked."""
    uvci = record.get("ci")
    if isinstance(uvci, str) and uvci.strip() in revocation_set:
        raise PolicyError.rejected("certificate revoked")


def shift(value: Union[date, datetime], days: int = 0, hours: int = 0) -> Union[date, datetime]:
    """Offset ``value``, rejecting results outside the representable calendar."""
    try:
        return value + timedelta(days=days, hours=hours)
    except OverflowError:
        raise PolicyError.rejected("validity window out of range") from None
