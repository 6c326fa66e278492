from database import build_engine, build_sessionmaker
from storage import Storage


def _storage() -> Storage:
    return Storage.open(build_engine("sqlite://"))


def test_ids_are_unique_and_increasing_and_never_reused() -> None:
    storage = _storage()
    first = storage.budgets.create({"name": "A"})
    second = storage.budgets.create({"name": "B"})
    assert storage.budgets.delete(second.id)

    third = storage.budgets.create({"name": "C"})

    assert [first.id, second.id, third.id] == [1, 2, 3]
    assert storage.monthly_data.create({"month": 0}).id == 1


def test_get_update_delete_on_missing_id() -> None:
    storage = _storage()

    assert storage.budgets.get(99) is None
    assert storage.budgets.update(99, {"currency": "EUR"}) is None
    assert storage.budgets.delete(99) is False


def test_update_merges_only_supplied_fields() -> None:
    storage = _storage()
    budget = storage.budgets.create({"name": "Shop", "rm_percent": 35.0})

    updated = storage.budgets.update(budget.id, {"currency": "EUR"})

    assert updated is not None
    assert updated.currency == "EUR"
    assert updated.rm_percent == 35.0
    assert updated.name == "Shop"
    assert updated.created_at == budget.created_at


def test_update_ignores_immutable_fields() -> None:
    storage = _storage()
    budget = storage.budgets.create({"name": "Shop"})

    storage.budgets.update(budget.id, {"id": 50, "created_at": None})

    stored = storage.budgets.get(budget.id)
    assert stored is not None
    assert stored.created_at == budget.created_at
    assert storage.budgets.get(50) is None


def test_unknown_budget_fields_are_kept_and_merged() -> None:
    storage = _storage()
    budget = storage.budgets.create({"name": "Shop", "region": "north", "shelves": 4})
    assert budget.extra == {"region": "north", "shelves": 4}

    storage.budgets.update(budget.id, {"shelves": 6})

    stored = storage.budgets.get(budget.id)
    assert stored is not None
    assert stored.extra == {"region": "north", "shelves": 6}


def test_list_for_user_filters_by_owner() -> None:
    storage = _storage()
    storage.budgets.create({"name": "Mine", "user_id": 1})
    storage.budgets.create({"name": "Theirs", "user_id": 2})
    storage.budgets.create({"name": "Nobody's"})

    assert [b.name for b in storage.budgets.list_for_user(1)] == ["Mine"]
    assert [b.name for b in storage.budgets.list_for_user(None)] == ["Nobody's"]


def test_monthly_lists_are_sorted_by_month() -> None:
    storage = _storage()
    for month in (7, 0, 11, 3):
        storage.monthly_data.create({"budget_id": 1, "month": month})
        storage.monthly_actuals.create(
            {"budget_id": 1, "month": month, "cogs": 1.0, "closing_inventory": 2.0}
        )
    storage.monthly_data.create({"budget_id": 2, "month": 1})

    assert [r.month for r in storage.monthly_data.list_for_budget(1)] == [0, 3, 7, 11]
    assert [r.month for r in storage.monthly_actuals.list_for_budget(1)] == [0, 3, 7, 11]


def test_replace_all_for_budget_with_nothing_leaves_no_rows() -> None:
    storage = _storage()
    storage.monthly_data.create({"budget_id": 1, "month": 0, "revenue": 10.0})
    storage.monthly_data.create({"budget_id": 1, "month": 1, "revenue": 20.0})
    storage.monthly_data.create({"budget_id": 2, "month": 1, "revenue": 30.0})

    rows, cleared = storage.monthly_data.replace_all_for_budget(1, [])

    assert rows == []
    assert cleared is True
    assert storage.monthly_data.list_for_budget(1) == []
    assert len(storage.monthly_data.list_for_budget(2)) == 1


def test_replace_all_for_budget_stamps_budget_and_keeps_order() -> None:
    storage = _storage()
    storage.monthly_data.create({"budget_id": 1, "month": 5})

    rows, _ = storage.monthly_data.replace_all_for_budget(
        1,
        [
            {"month": 2, "revenue": 200.0, "budget_id": 9},
            {"month": 1, "revenue": 100.0},
        ],
    )

    assert [r.month for r in rows] == [2, 1]
    assert all(r.budget_id == 1 for r in rows)
    assert all(r.is_actual is False for r in rows)
    assert [r.month for r in storage.monthly_data.list_for_budget(1)] == [1, 2]


def test_upsert_keeps_one_row_per_budget_month() -> None:
    storage = _storage()
    first, created = storage.monthly_actuals.upsert(
        {"budget_id": 1, "month": 3, "cogs": 100.0, "closing_inventory": 50.0}
    )
    assert created is True

    second, created = storage.monthly_actuals.upsert(
        {"budget_id": 1, "month": 3, "cogs": 120.0, "closing_inventory": 60.0}
    )

    assert created is False
    assert second.id == first.id
    assert second.recorded_at == first.recorded_at
    assert (second.cogs, second.closing_inventory) == (120.0, 60.0)
    assert len(storage.monthly_actuals.list_for_budget(1)) == 1


def test_upsert_distinguishes_budgets_and_months() -> None:
    storage = _storage()
    values = {"cogs": 1.0, "closing_inventory": 1.0}
    storage.monthly_actuals.upsert({"budget_id": 1, "month": 3, **values})
    storage.monthly_actuals.upsert({"budget_id": 1, "month": 4, **values})
    storage.monthly_actuals.upsert({"budget_id": 2, "month": 3, **values})

    assert storage.monthly_actuals.find_by_month(1, 4) is not None
    assert storage.monthly_actuals.find_by_month(2, 4) is None
    assert len(storage.monthly_actuals.list()) == 3


def test_delete_for_budget_reports_partial_failure(monkeypatch) -> None:
    storage = _storage()
    keep = storage.monthly_data.create({"budget_id": 1, "month": 0})
    storage.monthly_data.create({"budget_id": 1, "month": 1})

    original_delete = storage.monthly_data.delete

    def flaky_delete(entity_id: int) -> bool:
        if entity_id == keep.id:
            return False
        return original_delete(entity_id)

    monkeypatch.setattr(storage.monthly_data, "delete", flaky_delete)

    assert storage.monthly_data.delete_for_budget(1) is False
    assert [r.id for r in storage.monthly_data.list_for_budget(1)] == [keep.id]


def test_reopening_storage_continues_id_sequences() -> None:
    engine = build_engine("sqlite://")
    first = Storage.open(engine)
    first.budgets.create({"name": "A"})
    first.budgets.create({"name": "B"})

    second = Storage.open(engine)

    assert second.budgets.create({"name": "C"}).id == 3


def test_ids_outside_integer_range_are_simply_absent() -> None:
    storage = _storage()

    assert storage.budgets.get(2**70) is None
    assert storage.budgets.update(-(2**70), {"currency": "EUR"}) is None
    assert storage.monthly_actuals.delete(2**63) is False


def test_open_uses_supplied_sessionmaker() -> None:
    engine = build_engine("sqlite://")
    sessions = build_sessionmaker(engine)

    storage = Storage.open(engine, sessions)

    assert storage.sessions is sessions
    assert storage.users.sessions is sessions
