from __future__ import annotations

import threading
from typing import Any, Generic, Iterable, Mapping, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from database import Base, build_sessionmaker, create_schema, session_scope
from defaults import (
    budget_defaults,
    monthly_actual_defaults,
    monthly_data_defaults,
    user_defaults,
)
from identity import IdentityGenerator
from models import Budget, MonthlyActual, MonthlyData, User

ModelT = TypeVar("ModelT", bound=Base)

# SQLite INTEGER range; ids outside it cannot exist
ID_MIN = -(2**63)
ID_MAX = 2**63 - 1


def is_storable_id(value: int) -> bool:
    return ID_MIN <= value <= ID_MAX


class EntityStore(Generic[ModelT]):
    """Keyed collection of one entity kind.

    ``fields`` are the columns a caller may set on creation, ``mutable`` the
    ones :meth:`update` may change. Anything else in a payload is ignored.
    Each operation runs in its own session scope, so it either fully happens
    or not at all.
    """

    model: type[ModelT]
    fields: frozenset[str] = frozenset()
    mutable: frozenset[str] = frozenset()

    def __init__(
        self,
        sessions: sessionmaker[Session],
        identities: IdentityGenerator,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.sessions = sessions
        self.identities = identities
        self.lock = lock or threading.RLock()

    @property
    def kind(self) -> str:
        return self.model.__tablename__

    def _defaults(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return dict(values)

    def _prepare(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in values.items() if key in self.fields}

    def _apply(self, entity: ModelT, patch: Mapping[str, Any]) -> None:
        for key, value in patch.items():
            if key in self.mutable:
                setattr(entity, key, value)

    def get(self, entity_id: int) -> Optional[ModelT]:
        if not is_storable_id(entity_id):
            return None
        with self.lock, session_scope(self.sessions) as session:
            return session.get(self.model, entity_id)

    def list(self, *criteria: Any, order_by: Iterable[Any] = ()) -> list[ModelT]:
        stmt = select(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        order = tuple(order_by)
        if order:
            stmt = stmt.order_by(*order)
        with self.lock, session_scope(self.sessions) as session:
            return list(session.scalars(stmt).all())

    def create(self, values: Mapping[str, Any]) -> ModelT:
        data = self._prepare(self._defaults(values))
        with self.lock, session_scope(self.sessions) as session:
            entity = self.model(id=self.identities.next_id(self.kind), **data)
            session.add(entity)
        return entity

    def update(self, entity_id: int, patch: Mapping[str, Any]) -> Optional[ModelT]:
        if not is_storable_id(entity_id):
            return None
        with self.lock, session_scope(self.sessions) as session:
            entity = session.get(self.model, entity_id)
            if entity is None:
                return None
            self._apply(entity, patch)
        return entity

    def delete(self, entity_id: int) -> bool:
        if not is_storable_id(entity_id):
            return False
        with self.lock, session_scope(self.sessions) as session:
            entity = session.get(self.model, entity_id)
            if entity is None:
                return False
            session.delete(entity)
        return True

    def delete_where(self, *criteria: Any) -> bool:
        # One row at a time; rows already removed stay removed if a later one fails.
        success = True
        for entity in self.list(*criteria):
            if not self.delete(entity.id):
                success = False
        return success

    def max_id(self) -> int:
        with self.lock, session_scope(self.sessions) as session:
            return int(session.scalar(select(func.max(self.model.id))) or 0)


class UserStore(EntityStore[User]):
    model = User
    fields = frozenset({"username"})

    def _defaults(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return user_defaults(values)

    def get_by_username(self, username: str) -> Optional[User]:
        matches = self.list(User.username == username, order_by=(User.id,))
        return matches[0] if matches else None


class BudgetStore(EntityStore[Budget]):
    model = Budget
    fields = frozenset(
        {
            "user_id",
            "created_at",
            "saved_budget",
            "rm_percent",
            "currency",
            "name",
            "start_month",
            "start_year",
            "opening_inventory",
        }
    )
    mutable = fields - {"created_at"}
    reserved = frozenset({"id", "created_at", "extra"})

    def _defaults(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return budget_defaults(values)

    def _extra(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in values.items()
            if key not in self.fields and key not in self.reserved
        }

    def _prepare(self, values: Mapping[str, Any]) -> dict[str, Any]:
        data = super()._prepare(values)
        data["extra"] = self._extra(values)
        return data

    def _apply(self, entity: Budget, patch: Mapping[str, Any]) -> None:
        super()._apply(entity, patch)
        extra = self._extra(patch)
        if extra:
            # new dict so the JSON column registers the change
            entity.extra = {**(entity.extra or {}), **extra}

    def list_for_user(self, user_id: Optional[int]) -> list[Budget]:
        return self.list(Budget.user_id == user_id)


class MonthlyDataStore(EntityStore[MonthlyData]):
    model = MonthlyData
    fields = frozenset(
        {
            "budget_id",
            "month",
            "is_actual",
            "revenue",
            "cogs",
            "purchases",
            "opening_inventory",
            "closing_inventory",
            "gross_margin",
        }
    )
    mutable = fields

    def _defaults(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return monthly_data_defaults(values)

    def list_for_budget(self, budget_id: Optional[int]) -> list[MonthlyData]:
        return self.list(
            MonthlyData.budget_id == budget_id,
            order_by=(MonthlyData.month, MonthlyData.id),
        )

    def delete_for_budget(self, budget_id: Optional[int]) -> bool:
        return self.delete_where(MonthlyData.budget_id == budget_id)

    def replace_all_for_budget(
        self, budget_id: Optional[int], records: Iterable[Mapping[str, Any]]
    ) -> tuple[list[MonthlyData], bool]:
        """Drop every row of the budget, then create ``records`` in order.

        Returns the new rows and whether clearing the old ones fully succeeded.
        """
        with self.lock:
            cleared = self.delete_for_budget(budget_id)
            created = [
                self.create({**record, "budget_id": budget_id}) for record in records
            ]
        return created, cleared


class MonthlyActualStore(EntityStore[MonthlyActual]):
    model = MonthlyActual
    fields = frozenset(
        {"budget_id", "month", "cogs", "closing_inventory", "recorded_at"}
    )
    mutable = fields - {"recorded_at"}

    def _defaults(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return monthly_actual_defaults(values)

    def list_for_budget(self, budget_id: Optional[int]) -> list[MonthlyActual]:
        return self.list(
            MonthlyActual.budget_id == budget_id,
            order_by=(MonthlyActual.month, MonthlyActual.id),
        )

    def find_by_month(
        self, budget_id: Optional[int], month: int
    ) -> Optional[MonthlyActual]:
        matches = self.list(
            MonthlyActual.budget_id == budget_id,
            MonthlyActual.month == month,
            order_by=(MonthlyActual.id,),
        )
        return matches[0] if matches else None

    def upsert(self, record: Mapping[str, Any]) -> tuple[MonthlyActual, bool]:
        """Create or update the actual for ``(budget_id, month)``.

        An existing row only gets ``cogs`` and ``closing_inventory`` replaced;
        its id and ``recorded_at`` stay. Returns the row and whether it was
        newly created.
        """
        with self.lock:
            existing = self.find_by_month(record.get("budget_id"), record["month"])
            if existing is not None:
                updated = self.update(
                    existing.id,
                    {
                        "cogs": record["cogs"],
                        "closing_inventory": record["closing_inventory"],
                    },
                )
                if updated is not None:
                    return updated, False
            return self.create(record), True

    def delete_for_budget(self, budget_id: Optional[int]) -> bool:
        return self.delete_where(MonthlyActual.budget_id == budget_id)


class Storage:
    """The four entity stores over one database, sharing id sequences.

    All stores share one re-entrant lock: reads and writes go through a
    single connection when the database is in memory, and multi-step writes
    (replace-all, upsert) must not interleave.
    """

    def __init__(
        self,
        sessions: sessionmaker[Session],
        identities: Optional[IdentityGenerator] = None,
    ) -> None:
        self.sessions = sessions
        self.identities = identities or IdentityGenerator()
        self.lock = threading.RLock()
        self.users = UserStore(sessions, self.identities, self.lock)
        self.budgets = BudgetStore(sessions, self.identities, self.lock)
        self.monthly_data = MonthlyDataStore(sessions, self.identities, self.lock)
        self.monthly_actuals = MonthlyActualStore(sessions, self.identities, self.lock)

    @classmethod
    def open(
        cls, engine: Engine, sessions: Optional[sessionmaker[Session]] = None
    ) -> "Storage":
        create_schema(engine)
        storage = cls(sessions or build_sessionmaker(engine))
        storage.sync_identities()
        return storage

    def stores(self) -> list[EntityStore[Any]]:
        return [self.users, self.budgets, self.monthly_data, self.monthly_actuals]

    def sync_identities(self) -> None:
        for store in self.stores():
            self.identities.observe(store.kind, store.max_id())
