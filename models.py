from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utcnow() -> datetime:
    # naive UTC, which is what SQLite hands back on reload
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Budget(Base):
    __tablename__ = "budgets"
    __table_args__ = (Index("ix_budgets_user", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    saved_budget: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rm_percent: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="$")
    name: Mapped[Optional[str]] = mapped_column(String(200))
    start_month: Mapped[Optional[int]] = mapped_column(Integer)
    start_year: Mapped[Optional[int]] = mapped_column(Integer)
    opening_inventory: Mapped[Optional[float]] = mapped_column(Float)
    # caller-supplied keys with no column of their own
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


class MonthlyData(Base):
    __tablename__ = "monthly_data"
    __table_args__ = (Index("ix_monthly_data_budget_month", "budget_id", "month"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    budget_id: Mapped[Optional[int]] = mapped_column(Integer)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    is_actual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revenue: Mapped[Optional[float]] = mapped_column(Float)
    cogs: Mapped[Optional[float]] = mapped_column(Float)
    purchases: Mapped[Optional[float]] = mapped_column(Float)
    opening_inventory: Mapped[Optional[float]] = mapped_column(Float)
    closing_inventory: Mapped[Optional[float]] = mapped_column(Float)
    gross_margin: Mapped[Optional[float]] = mapped_column(Float)


class MonthlyActual(Base):
    __tablename__ = "monthly_actuals"
    __table_args__ = (
        Index("ix_monthly_actuals_budget_month", "budget_id", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    budget_id: Mapped[Optional[int]] = mapped_column(Integer)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    cogs: Mapped[float] = mapped_column(Float, nullable=False)
    closing_inventory: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
