"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping
from datetime import UTC, date, datetime
from uuid import uuid4

JsonDict = dict[str, object]
Serializable = Mapping[str, object] | list[Mapping[str, object]]


def new_id() -> str:
    return str(uuid4())


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)


def normalize_address(address: str) -> str:
    """Lower-case hex form used as entity identity."""
    raw: str = address.strip().lower()
    return raw if raw.startswith("0x") else f"0x{raw}"


# -- Accounting periods (calendar months, UTC) ------------------------------


def period_start(timestamp: int) -> date:
    moment: datetime = datetime.fromtimestamp(timestamp, UTC)
    return date(moment.year, moment.month, 1)


def next_period_start(start: date) -> date:
    if start.month == 12:
        return date(start.year + 1, 1, 1)
    return date(start.year, start.month + 1, 1)


def previous_period_start(start: date) -> date:
    if start.month == 1:
        return date(start.year - 1, 12, 1)
    return date(start.year, start.month - 1, 1)


def period_end(start: date) -> date:
    return date.fromordinal(next_period_start(start).toordinal() - 1)
