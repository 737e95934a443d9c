from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from backend.scoreboard.ledger import LedgerUnavailableError
from family_habits.storage import DuplicateJoinCodeError

DAY = date(2024, 3, 15)


@pytest.fixture
def family(store):
    return store.create_family("Smiths", "ABC123")


@pytest.fixture
def member(store, family):
    return store.add_member(family.id, "Alice", "👩", "#3b82f6")


@pytest.fixture
def habit(store, family):
    return store.add_habit(
        family.id,
        name="Read",
        icon="📚",
        points=10,
        unit="pages",
        daily_target=1,
        weekly_target=7,
        monthly_target=30,
        category=None,
    )


def test_family_lookup_by_code_and_id(store, family):
    assert store.find_family_by_code("ABC123") == store.get_family(family.id)
    assert store.find_family_by_code("ZZZ999") is None


def test_duplicate_join_code_is_rejected(store, family):
    with pytest.raises(DuplicateJoinCodeError):
        store.create_family("Joneses", "ABC123")


def test_members_come_back_in_insertion_order(store, family):
    names = ["Zoe", "Adam", "Mia"]
    for name in names:
        store.add_member(family.id, name, "", "")
    assert [member.name for member in store.fetch_members(family.id)] == names


def test_increment_creates_then_updates_single_row(store, family, member, habit):
    first = store.increment_completion(family.id, member.id, habit.id, DAY, 1)
    second = store.increment_completion(family.id, member.id, habit.id, DAY, 2)

    assert first.id == second.id
    assert second.count == 3
    assert len(store.fetch_completions(family.id)) == 1


def test_decrement_clamps_at_zero(store, family, member, habit):
    store.increment_completion(family.id, member.id, habit.id, DAY, 2)
    result = store.increment_completion(family.id, member.id, habit.id, DAY, -5)
    assert result.count == 0


def test_first_decrement_inserts_zero(store, family, member, habit):
    result = store.increment_completion(family.id, member.id, habit.id, DAY, -1)
    assert result.count == 0


def test_upsert_sets_absolute_count(store, family, member, habit):
    store.upsert_completion(family.id, member.id, habit.id, DAY, 4)
    result = store.upsert_completion(family.id, member.id, habit.id, DAY, 2)
    assert result.count == 2
    assert store.upsert_completion(family.id, member.id, habit.id, DAY, -3).count == 0


def test_fetch_completions_respects_lower_bound(store, family, member, habit):
    store.increment_completion(family.id, member.id, habit.id, date(2024, 3, 1), 1)
    store.increment_completion(family.id, member.id, habit.id, DAY, 1)
    store.increment_completion(family.id, member.id, habit.id, date(2030, 1, 1), 1)

    since = store.fetch_completions(family.id, since=date(2024, 3, 8))
    assert sorted(completion.date for completion in since) == [DAY, date(2030, 1, 1)]
    assert len(store.fetch_completions(family.id)) == 3


def test_completions_are_scoped_to_family(store, family, member, habit):
    other = store.create_family("Others", "XYZ789")
    store.increment_completion(family.id, member.id, habit.id, DAY, 1)
    assert store.fetch_completions(other.id) == ()


def test_deleting_member_cascades_completions(store, family, member, habit):
    other = store.add_member(family.id, "Bob", "", "")
    store.increment_completion(family.id, member.id, habit.id, DAY, 1)
    store.increment_completion(family.id, other.id, habit.id, DAY, 1)

    assert store.delete_member(member.id) is True
    remaining = store.fetch_completions(family.id)
    assert [completion.member_id for completion in remaining] == [other.id]
    assert store.get_member(member.id) is None
    assert store.delete_member(member.id) is False


def test_deleting_habit_cascades_completions(store, family, member, habit):
    store.increment_completion(family.id, member.id, habit.id, DAY, 1)
    assert store.delete_habit(habit.id) is True
    assert store.fetch_completions(family.id) == ()
    assert store.fetch_habits(family.id) == ()


def test_habit_fields_round_trip(store, family, habit):
    loaded = store.get_habit(habit.id)
    assert loaded.points == 10
    assert loaded.unit == "pages"
    assert loaded.category is None


def test_read_failure_surfaces_as_ledger_unavailable(store, family):
    down = OperationalError("SELECT 1", {}, Exception("connection refused"))
    with patch.object(store.engine, "connect", side_effect=down):
        with pytest.raises(LedgerUnavailableError):
            store.fetch_completions(family.id)


def test_write_failure_surfaces_as_ledger_unavailable(store, family):
    down = OperationalError("INSERT", {}, Exception("connection refused"))
    with patch.object(store.engine, "begin", side_effect=down):
        with pytest.raises(LedgerUnavailableError):
            store.add_member(family.id, "Alice", "", "")
