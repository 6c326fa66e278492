from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from models import Budget, MonthlyActual, MonthlyData, User
from schemas import (
    BudgetIn,
    BudgetPatch,
    MonthlyActualIn,
    MonthlyDataIn,
    MonthlyDataPatch,
    UserIn,
)
from storage import Storage

logger = logging.getLogger(__name__)


def _values(data: Any) -> dict[str, Any]:
    if isinstance(data, Mapping):
        return dict(data)
    return data.model_dump()


def _changes(data: Any) -> dict[str, Any]:
    if isinstance(data, Mapping):
        return dict(data)
    return data.changes()


class BudgetingService:
    """Budget, monthly data and monthly actual operations over one :class:`Storage`.

    Missing entities come back as ``None`` (or ``False`` for deletes) rather
    than as exceptions; the caller decides what absence means. Cascades run
    step by step without a transaction, so a failure part way through leaves
    whatever was already removed removed.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    # users

    def get_user(self, user_id: int) -> Optional[User]:
        return self.storage.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.storage.users.get_by_username(username)

    def create_user(self, data: UserIn | Mapping[str, Any]) -> User:
        values = _values(data)
        username = str(values.get("username") or "").strip()
        if not username:
            raise ValueError("Username cannot be empty")
        if self.storage.users.get_by_username(username):
            raise ValueError("Username already taken")
        user = self.storage.users.create({"username": username})
        logger.info(f"user_created: id={user.id}")
        return user

    def ensure_user(self, username: str) -> User:
        existing = self.storage.users.get_by_username(username)
        if existing:
            return existing
        return self.create_user({"username": username})

    # budgets

    def list_budgets(self, user_id: Optional[int]) -> list[Budget]:
        return self.storage.budgets.list_for_user(user_id)

    def get_budget(self, budget_id: int) -> Optional[Budget]:
        return self.storage.budgets.get(budget_id)

    def create_budget(self, data: BudgetIn | Mapping[str, Any]) -> Budget:
        budget = self.storage.budgets.create(_values(data))
        logger.info(f"budget_created: id={budget.id} user_id={budget.user_id}")
        return budget

    def update_budget(
        self, budget_id: int, data: BudgetPatch | Mapping[str, Any]
    ) -> Optional[Budget]:
        changes = _changes(data)
        budget = self.storage.budgets.update(budget_id, changes)
        if budget is not None:
            logger.info(
                f"budget_updated: id={budget_id} fields={','.join(sorted(changes))}"
            )
        return budget

    def delete_budget(self, budget_id: int) -> bool:
        """Remove the budget's monthly data, then the budget itself.

        Monthly actuals are left alone; :meth:`delete_monthly_actuals_for_budget`
        removes them. Returns whether the budget row was removed.
        """
        if not self.delete_monthly_data_for_budget(budget_id):
            logger.warning(
                f"budget_delete_cascade_incomplete: id={budget_id} kind=monthly_data"
            )
        deleted = self.storage.budgets.delete(budget_id)
        if deleted:
            logger.info(f"budget_deleted: id={budget_id}")
        return deleted

    # monthly data

    def list_monthly_data(self, budget_id: int) -> list[MonthlyData]:
        return self.storage.monthly_data.list_for_budget(budget_id)

    def save_monthly_data(
        self,
        budget_id: int,
        records: Iterable[MonthlyDataIn | Mapping[str, Any]],
    ) -> list[MonthlyData]:
        """Replace the budget's monthly data with ``records``.

        Months missing from ``records`` are gone afterwards.
        """
        rows, cleared = self.storage.monthly_data.replace_all_for_budget(
            budget_id, [_values(record) for record in records]
        )
        if not cleared:
            logger.warning(
                f"monthly_data_replace_incomplete: budget_id={budget_id}"
            )
        logger.info(f"monthly_data_saved: budget_id={budget_id} rows={len(rows)}")
        return rows

    def update_monthly_data(
        self, data_id: int, data: MonthlyDataPatch | Mapping[str, Any]
    ) -> Optional[MonthlyData]:
        return self.storage.monthly_data.update(data_id, _changes(data))

    def delete_monthly_data_for_budget(self, budget_id: int) -> bool:
        return self.storage.monthly_data.delete_for_budget(budget_id)

    # monthly actuals

    def list_monthly_actuals(self, budget_id: int) -> list[MonthlyActual]:
        return self.storage.monthly_actuals.list_for_budget(budget_id)

    def get_monthly_actual(self, budget_id: int, month: int) -> Optional[MonthlyActual]:
        return self.storage.monthly_actuals.find_by_month(budget_id, month)

    def save_monthly_actual(
        self, budget_id: int, data: MonthlyActualIn | Mapping[str, Any]
    ) -> MonthlyActual:
        values = _values(data)
        values["budget_id"] = budget_id
        actual, created = self.storage.monthly_actuals.upsert(values)
        logger.info(
            f"monthly_actual_saved: budget_id={budget_id} month={actual.month} "
            f"id={actual.id} created={created}"
        )
        return actual

    def delete_monthly_actual(self, budget_id: int, month: int) -> Optional[bool]:
        """Delete the actual for ``month``; ``None`` when there is none."""
        actual = self.get_monthly_actual(budget_id, month)
        if actual is None:
            return None
        deleted = self.storage.monthly_actuals.delete(actual.id)
        if deleted:
            logger.info(
                f"monthly_actual_deleted: budget_id={budget_id} month={month}"
            )
        return deleted

    def delete_monthly_actuals_for_budget(self, budget_id: int) -> bool:
        deleted = self.storage.monthly_actuals.delete_for_budget(budget_id)
        if not deleted:
            logger.warning(
                f"monthly_actuals_delete_incomplete: budget_id={budget_id}"
            )
        return deleted
