import math
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import Budget

MONTH_MIN = 0
MONTH_MAX = 11
ID_MAX = 2**63 - 1


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(_has_non_finite(v) for v in value.values())
    if isinstance(value, list):
        return any(_has_non_finite(v) for v in value)
    return False


class _FiniteExtras(BaseModel):
    @model_validator(mode="after")
    def reject_non_finite_extras(self):
        for key, value in (self.model_extra or {}).items():
            if _has_non_finite(value):
                raise ValueError(f"{key} must be a finite number")
        return self


class UserIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class BudgetIn(_FiniteExtras):
    # unknown keys are kept and stored alongside the budget
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    name: str = Field(..., min_length=1, max_length=200)
    user_id: Optional[int] = Field(default=None, ge=1, le=ID_MAX)
    saved_budget: Optional[bool] = None
    rm_percent: Optional[float] = Field(default=None, ge=0, le=100)
    currency: Optional[str] = Field(default=None, min_length=1, max_length=8)
    start_month: Optional[int] = Field(default=None, ge=MONTH_MIN, le=MONTH_MAX)
    start_year: Optional[int] = Field(default=None, ge=1970, le=3000)
    opening_inventory: Optional[float] = None


class BudgetPatch(_FiniteExtras):
    """Fields to change on an existing budget.

    Only keys present in the payload are applied; ``saved_budget`` and
    ``currency`` cannot be cleared, only replaced.
    """

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    user_id: Optional[int] = Field(default=None, ge=1, le=ID_MAX)
    saved_budget: bool = False
    rm_percent: Optional[float] = Field(default=None, ge=0, le=100)
    currency: str = Field(default="$", min_length=1, max_length=8)
    start_month: Optional[int] = Field(default=None, ge=MONTH_MIN, le=MONTH_MAX)
    start_year: Optional[int] = Field(default=None, ge=1970, le=3000)
    opening_inventory: Optional[float] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class BudgetOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    user_id: Optional[int]
    created_at: datetime
    saved_budget: bool
    rm_percent: Optional[float]
    currency: str
    name: Optional[str]
    start_month: Optional[int]
    start_year: Optional[int]
    opening_inventory: Optional[float]

    @classmethod
    def from_row(cls, budget: Budget) -> "BudgetOut":
        data: dict[str, Any] = dict(budget.extra or {})
        data.update(
            id=budget.id,
            user_id=budget.user_id,
            created_at=budget.created_at,
            saved_budget=budget.saved_budget,
            rm_percent=budget.rm_percent,
            currency=budget.currency,
            name=budget.name,
            start_month=budget.start_month,
            start_year=budget.start_year,
            opening_inventory=budget.opening_inventory,
        )
        return cls(**data)


class MonthlyDataIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    month: int = Field(..., ge=MONTH_MIN, le=MONTH_MAX)
    is_actual: Optional[bool] = None
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    purchases: Optional[float] = None
    opening_inventory: Optional[float] = None
    closing_inventory: Optional[float] = None
    gross_margin: Optional[float] = None


class MonthlyDataPatch(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    month: int = Field(default=MONTH_MIN, ge=MONTH_MIN, le=MONTH_MAX)
    is_actual: bool = False
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    purchases: Optional[float] = None
    opening_inventory: Optional[float] = None
    closing_inventory: Optional[float] = None
    gross_margin: Optional[float] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class MonthlyDataOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    budget_id: Optional[int]
    month: int
    is_actual: bool
    revenue: Optional[float]
    cogs: Optional[float]
    purchases: Optional[float]
    opening_inventory: Optional[float]
    closing_inventory: Optional[float]
    gross_margin: Optional[float]


class MonthlyActualIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    month: int = Field(..., ge=MONTH_MIN, le=MONTH_MAX)
    cogs: float
    closing_inventory: float


class MonthlyActualOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    budget_id: Optional[int]
    month: int
    cogs: float
    closing_inventory: float
    recorded_at: datetime


def is_valid_month(value: int) -> bool:
    return MONTH_MIN <= value <= MONTH_MAX


def format_validation_errors(errors: Iterable[dict[str, Any]]) -> str:
    parts = []
    for error in errors:
        loc = [str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path")]
        message = error.get("msg", "Invalid value")
        if loc:
            parts.append(f'{message} at "{".".join(loc)}"')
        else:
            parts.append(message)
    if not parts:
        return "Validation error"
    return "Validation error: " + "; ".join(parts)
