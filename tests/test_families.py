from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from backend.scoreboard.notifications import ChangeNotifier
from backend.scoreboard.service import ScoreboardService
from family_habits.configuration import FamilyHabitsConfig, JoinCodeConfig
from family_habits.families import (
    CrossFamilyReferenceError,
    FamilyDirectory,
    FamilyNotFoundError,
    HabitNotFoundError,
    JoinCodeCollisionError,
    MemberNotFoundError,
    generate_join_code,
)
from family_habits.storage import DuplicateJoinCodeError

DAY = date(2024, 3, 15)


@pytest.fixture
def family(directory):
    return directory.create_family("Smiths")


def test_join_code_shape():
    code = generate_join_code()
    assert len(code) == 6
    assert code.isalnum() and code.upper() == code
    assert len(generate_join_code(8, alphabet="AB")) == 8
    with pytest.raises(ValueError):
        generate_join_code(0)


def test_join_is_case_and_whitespace_insensitive(directory, family):
    joined = directory.join_family(f"  {family.join_code.lower()} ")
    assert joined.id == family.id


def test_join_with_unknown_code(directory):
    with pytest.raises(FamilyNotFoundError):
        directory.join_family("NOPE00")


def test_blank_names_are_rejected(directory, family):
    with pytest.raises(ValueError):
        directory.create_family("   ")
    with pytest.raises(ValueError):
        directory.add_member(family.id, "")
    with pytest.raises(ValueError):
        directory.add_habit(family.id, " ")


def test_member_and_habit_defaults(directory, family):
    member = directory.add_member(family.id, "Alice")
    habit = directory.add_habit(family.id, "Stretch")

    assert (member.avatar, member.color) == ("👨", "#ef4444")
    assert (habit.points, habit.unit, habit.icon) == (10, "times", "💪")
    assert (habit.daily_target, habit.weekly_target, habit.monthly_target) == (1, 7, 30)
    assert habit.category is None


def test_negative_points_are_rejected(directory, family):
    with pytest.raises(ValueError):
        directory.add_habit(family.id, "Cheat", points=-5)


def test_collision_is_retried_then_gives_up(store):
    config = FamilyHabitsConfig(join_code=JoinCodeConfig(max_attempts=3))
    directory = FamilyDirectory(store, config=config)

    with patch("family_habits.families.generate_join_code", side_effect=["AAAAAA", "AAAAAA", "BBBBBB"]):
        first = directory.create_family("One")
        second = directory.create_family("Two")
    assert (first.join_code, second.join_code) == ("AAAAAA", "BBBBBB")

    with patch.object(store, "create_family", side_effect=DuplicateJoinCodeError("taken")):
        with pytest.raises(JoinCodeCollisionError):
            directory.create_family("Three")


def test_record_completion_increments_and_clamps(directory, family):
    member = directory.add_member(family.id, "Alice")
    habit = directory.add_habit(family.id, "Read")

    directory.record_completion(family.id, member.id, habit.id, on=DAY)
    assert directory.record_completion(family.id, member.id, habit.id, on=DAY).count == 2
    assert directory.record_completion(family.id, member.id, habit.id, delta=-5, on=DAY).count == 0


def test_record_completion_defaults_to_local_today(store):
    config = FamilyHabitsConfig(timezone="Asia/Tokyo")
    clock = lambda: datetime(2024, 3, 15, 20, 0, tzinfo=timezone.utc)
    directory = FamilyDirectory(store, config=config, clock=clock)
    family = directory.create_family("Tanakas")
    member = directory.add_member(family.id, "Yui")
    habit = directory.add_habit(family.id, "Walk")

    assert directory.record_completion(family.id, member.id, habit.id).date == date(2024, 3, 16)


def test_set_completion_overwrites(directory, family):
    member = directory.add_member(family.id, "Alice")
    habit = directory.add_habit(family.id, "Read")
    directory.set_completion(family.id, member.id, habit.id, 5, on=DAY)
    assert directory.set_completion(family.id, member.id, habit.id, 1, on=DAY).count == 1


def test_cross_family_references_are_rejected(directory, family):
    other = directory.create_family("Joneses")
    stranger = directory.add_member(other.id, "Stranger")
    foreign_habit = directory.add_habit(other.id, "Foreign")
    member = directory.add_member(family.id, "Alice")
    habit = directory.add_habit(family.id, "Read")

    with pytest.raises(CrossFamilyReferenceError):
        directory.record_completion(family.id, stranger.id, habit.id, on=DAY)
    with pytest.raises(CrossFamilyReferenceError):
        directory.record_completion(family.id, member.id, foreign_habit.id, on=DAY)


def test_unknown_ids(directory, family):
    member = directory.add_member(family.id, "Alice")
    with pytest.raises(MemberNotFoundError):
        directory.remove_member(family.id, "missing")
    with pytest.raises(HabitNotFoundError):
        directory.record_completion(family.id, member.id, "missing", on=DAY)
    with pytest.raises(FamilyNotFoundError):
        directory.list_members("missing")


def test_daily_progress(directory, family):
    member = directory.add_member(family.id, "Alice")
    read = directory.add_habit(family.id, "Read", daily_target=2)
    walk = directory.add_habit(family.id, "Walk", daily_target=1)
    directory.record_completion(family.id, member.id, read.id, on=DAY)
    directory.record_completion(family.id, member.id, walk.id, delta=3, on=DAY)

    progress = {item.habit.id: item for item in directory.daily_progress(family.id, member.id, on=DAY)}

    assert (progress[read.id].count, progress[read.id].ratio) == (1, 0.5)
    assert (progress[walk.id].count, progress[walk.id].ratio) == (3, 1.0)


def test_writes_publish_change_events(store):
    notifier = ChangeNotifier()
    directory = FamilyDirectory(store, notifier=notifier)
    family = directory.create_family("Smiths")
    tables = []
    notifier.subscribe(family.id, lambda event: tables.append(event.table))

    member = directory.add_member(family.id, "Alice")
    habit = directory.add_habit(family.id, "Read")
    directory.record_completion(family.id, member.id, habit.id, on=DAY)
    directory.remove_habit(family.id, habit.id)

    assert tables == ["family_members", "habits", "completions", "habits", "completions"]


def test_scoreboard_follows_writes_through_notifications(store):
    notifier = ChangeNotifier()
    clock = lambda: datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
    directory = FamilyDirectory(store, notifier=notifier, clock=clock)
    scoreboards = ScoreboardService(store, clock=clock)
    family = directory.create_family("Smiths")
    alice = directory.add_member(family.id, "Alice")
    bob = directory.add_member(family.id, "Bob")
    read = directory.add_habit(family.id, "Read", points=20)

    latest = {}
    scoreboards.watch(notifier, family.id, "today", on_update=lambda board, badges: latest.update(board=board))

    directory.record_completion(family.id, bob.id, read.id)
    standings = [(entry.member.name, entry.total_points, entry.rank) for entry in latest["board"].leaderboard]
    assert standings == [("Bob", 20, 1), ("Alice", 0, 2)]

    directory.remove_member(family.id, bob.id)
    standings = [(entry.member.name, entry.total_points, entry.rank) for entry in latest["board"].leaderboard]
    assert standings == [("Alice", 0, 1)]
