from datetime import date

import pytest

from backend.scoreboard.models import Completion, Habit, Member
from family_habits.configuration import DatabaseConfig, FamilyHabitsConfig
from family_habits.families import FamilyDirectory
from family_habits.storage import SQLLedgerStore

FAMILY_ID = "fam-1"


def make_member(member_id, family_id=FAMILY_ID):
    return Member(id=member_id, family_id=family_id, name=member_id.title())


def make_habit(habit_id, points, family_id=FAMILY_ID):
    return Habit(id=habit_id, family_id=family_id, name=habit_id, points=points)


def make_completion(member_id, habit_id, day, count, family_id=FAMILY_ID):
    return Completion(
        id=f"{member_id}-{habit_id}-{day.isoformat()}",
        family_id=family_id,
        member_id=member_id,
        habit_id=habit_id,
        date=day,
        count=count,
    )


@pytest.fixture
def roster():
    return [make_member("alice"), make_member("bob"), make_member("carol")]


@pytest.fixture
def habits():
    return [make_habit("read", 10), make_habit("walk", 5)]


@pytest.fixture
def completions():
    day = date(2024, 3, 15)
    return [
        make_completion("alice", "read", day, 2),
        make_completion("alice", "walk", day, 1),
        make_completion("bob", "walk", day, 3),
        make_completion("bob", "read", date(2024, 3, 1), 1),
    ]


@pytest.fixture
def store():
    return SQLLedgerStore.from_config(DatabaseConfig(url="sqlite://"))


@pytest.fixture
def directory(store):
    return FamilyDirectory(store, config=FamilyHabitsConfig())
