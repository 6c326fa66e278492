"""Default-value policy applied when entities are created.

Each function takes the caller-supplied values and returns a new mapping with
omitted (or ``None``) optional fields filled in and creation stamps set. They
touch no storage, so the policy can be checked on its own.
"""
from datetime import datetime
from typing import Any, Mapping, Optional

from models import utcnow

BUDGET_DEFAULTS: dict[str, Any] = {
    "saved_budget": False,
    "user_id": None,
    "rm_percent": None,
    "currency": "$",
}

MONTHLY_DATA_DEFAULTS: dict[str, Any] = {
    "is_actual": False,
    "budget_id": None,
}

MONTHLY_ACTUAL_DEFAULTS: dict[str, Any] = {
    "budget_id": None,
}


def _fill(values: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(values)
    for key, default in defaults.items():
        if data.get(key) is None:
            data[key] = default
    return data


def user_defaults(values: Mapping[str, Any]) -> dict[str, Any]:
    return dict(values)


def budget_defaults(
    values: Mapping[str, Any], *, now: Optional[datetime] = None
) -> dict[str, Any]:
    data = _fill(values, BUDGET_DEFAULTS)
    data["created_at"] = now or utcnow()
    return data


def monthly_data_defaults(values: Mapping[str, Any]) -> dict[str, Any]:
    return _fill(values, MONTHLY_DATA_DEFAULTS)


def monthly_actual_defaults(
    values: Mapping[str, Any], *, now: Optional[datetime] = None
) -> dict[str, Any]:
    data = _fill(values, MONTHLY_ACTUAL_DEFAULTS)
    data["recorded_at"] = now or utcnow()
    return data
