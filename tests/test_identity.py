from identity import IdentityGenerator


def test_sequences_start_at_one_and_increase_per_kind() -> None:
    ids = IdentityGenerator()

    assert [ids.next_id("budgets") for _ in range(3)] == [1, 2, 3]
    assert ids.next_id("monthly_actuals") == 1
    assert ids.peek("budgets") == 3
    assert ids.peek("users") == 0


def test_observe_only_moves_forward() -> None:
    ids = IdentityGenerator()
    ids.observe("budgets", 7)
    ids.observe("budgets", 2)

    assert ids.next_id("budgets") == 8
