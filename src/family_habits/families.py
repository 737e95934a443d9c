from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence

from backend.scoreboard.models import Completion, Family, Habit, Member
from backend.scoreboard.notifications import COMPLETIONS_TABLE, HABITS_TABLE, MEMBERS_TABLE, ChangeNotifier
from backend.scoreboard.timeframe import local_today

from .configuration import JOIN_CODE_ALPHABET, FamilyHabitsConfig
from .storage import DuplicateJoinCodeError, SQLLedgerStore

logger = logging.getLogger(__name__)


class FamilyNotFoundError(LookupError):
    pass


class MemberNotFoundError(LookupError):
    pass


class HabitNotFoundError(LookupError):
    pass


class CrossFamilyReferenceError(ValueError):
    """A member or habit id belongs to a different family than the request."""


class JoinCodeCollisionError(RuntimeError):
    pass


def generate_join_code(length: int = 6, alphabet: Optional[str] = None) -> str:
    alphabet = alphabet or JOIN_CODE_ALPHABET
    if length <= 0:
        raise ValueError("join code length must be positive")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_join_code(code: str) -> str:
    return code.strip().upper()


def _require_name(name: str, what: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError(f"{what} name must not be empty")
    return cleaned


@dataclass(frozen=True)
class HabitProgress:
    habit: Habit
    count: int
    target: int
    ratio: float


class FamilyDirectory:
    """
    Family, member and habit management plus the completion write path.

    Every successful write publishes a change event for its table so that
    scoreboards watching the family recompute.
    """

    def __init__(
        self,
        store: SQLLedgerStore,
        notifier: Optional[ChangeNotifier] = None,
        config: Optional[FamilyHabitsConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier or ChangeNotifier()
        self.config = config or FamilyHabitsConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ----- families -----

    def create_family(self, name: str) -> Family:
        name = _require_name(name, "Family")
        code_cfg = self.config.join_code
        for attempt in range(1, max(1, code_cfg.max_attempts) + 1):
            code = generate_join_code(code_cfg.length, code_cfg.alphabet)
            try:
                family = self.store.create_family(name, code)
            except DuplicateJoinCodeError:
                logger.warning("Join code collision on attempt %s for family %r", attempt, name)
                continue
            logger.info("Created family %s with join code %s", family.id, family.join_code)
            return family
        raise JoinCodeCollisionError(f"Could not allocate a unique join code after {code_cfg.max_attempts} attempts")

    def join_family(self, code: str) -> Family:
        family = self.store.find_family_by_code(normalize_join_code(code))
        if family is None:
            raise FamilyNotFoundError("Family not found. Please check the code and try again.")
        return family

    def get_family(self, family_id: str) -> Family:
        family = self.store.get_family(family_id)
        if family is None:
            raise FamilyNotFoundError(f"Unknown family {family_id}")
        return family

    # ----- members -----

    def list_members(self, family_id: str) -> Sequence[Member]:
        self.get_family(family_id)
        return self.store.fetch_members(family_id)

    def add_member(
        self,
        family_id: str,
        name: str,
        avatar: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Member:
        self.get_family(family_id)
        defaults = self.config.member_defaults
        member = self.store.add_member(
            family_id,
            _require_name(name, "Member"),
            avatar or defaults.avatar,
            color or defaults.color,
        )
        self.notifier.publish(family_id, MEMBERS_TABLE)
        return member

    def remove_member(self, family_id: str, member_id: str) -> None:
        """Delete a member and, with it, all of their completions."""
        self._member_in_family(family_id, member_id)
        self.store.delete_member(member_id)
        self.notifier.publish(family_id, MEMBERS_TABLE)
        self.notifier.publish(family_id, COMPLETIONS_TABLE)

    # ----- habits -----

    def list_habits(self, family_id: str) -> Sequence[Habit]:
        self.get_family(family_id)
        return self.store.fetch_habits(family_id)

    def add_habit(
        self,
        family_id: str,
        name: str,
        points: Optional[int] = None,
        icon: Optional[str] = None,
        unit: Optional[str] = None,
        daily_target: Optional[int] = None,
        weekly_target: Optional[int] = None,
        monthly_target: Optional[int] = None,
        category: Optional[str] = None,
    ) -> Habit:
        self.get_family(family_id)
        defaults = self.config.habit_defaults
        points = defaults.points if points is None else points
        if points < 0:
            raise ValueError("Habit points must not be negative")
        habit = self.store.add_habit(
            family_id,
            name=_require_name(name, "Habit"),
            points=points,
            icon=icon or defaults.icon,
            unit=unit or defaults.unit,
            daily_target=defaults.daily_target if daily_target is None else daily_target,
            weekly_target=defaults.weekly_target if weekly_target is None else weekly_target,
            monthly_target=defaults.monthly_target if monthly_target is None else monthly_target,
            category=category or None,
        )
        self.notifier.publish(family_id, HABITS_TABLE)
        return habit

    def remove_habit(self, family_id: str, habit_id: str) -> None:
        """Delete a habit and every completion recorded against it."""
        self._habit_in_family(family_id, habit_id)
        self.store.delete_habit(habit_id)
        self.notifier.publish(family_id, HABITS_TABLE)
        self.notifier.publish(family_id, COMPLETIONS_TABLE)

    # ----- completions -----

    def record_completion(
        self,
        family_id: str,
        member_id: str,
        habit_id: str,
        delta: int = 1,
        on: Optional[date] = None,
    ) -> Completion:
        """
        Add ``delta`` (negative to undo) to today's counter for member/habit.

        Decrements stop at zero.
        """

        self._member_in_family(family_id, member_id)
        self._habit_in_family(family_id, habit_id)
        completion = self.store.increment_completion(family_id, member_id, habit_id, on or self.today(), delta)
        self.notifier.publish(family_id, COMPLETIONS_TABLE)
        return completion

    def set_completion(
        self,
        family_id: str,
        member_id: str,
        habit_id: str,
        count: int,
        on: Optional[date] = None,
    ) -> Completion:
        self._member_in_family(family_id, member_id)
        self._habit_in_family(family_id, habit_id)
        completion = self.store.upsert_completion(family_id, member_id, habit_id, on or self.today(), count)
        self.notifier.publish(family_id, COMPLETIONS_TABLE)
        return completion

    def daily_progress(self, family_id: str, member_id: str, on: Optional[date] = None) -> List[HabitProgress]:
        """Per-habit count against the daily target, for progress bars."""
        self._member_in_family(family_id, member_id)
        day = on or self.today()
        counts = {
            completion.habit_id: completion.count
            for completion in self.store.fetch_day_completions(family_id, member_id, day)
        }
        progress: List[HabitProgress] = []
        for habit in self.store.fetch_habits(family_id):
            count = counts.get(habit.id, 0)
            target = habit.daily_target
            ratio = 1.0 if target <= 0 else min(count / target, 1.0)
            progress.append(HabitProgress(habit=habit, count=count, target=target, ratio=ratio))
        return progress

    def today(self) -> date:
        return local_today(self.config.timezone, self._clock())

    def _member_in_family(self, family_id: str, member_id: str) -> Member:
        self.get_family(family_id)
        member = self.store.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(f"Unknown member {member_id}")
        if member.family_id != family_id:
            raise CrossFamilyReferenceError(f"Member {member_id} does not belong to family {family_id}")
        return member

    def _habit_in_family(self, family_id: str, habit_id: str) -> Habit:
        self.get_family(family_id)
        habit = self.store.get_habit(habit_id)
        if habit is None:
            raise HabitNotFoundError(f"Unknown habit {habit_id}")
        if habit.family_id != family_id:
            raise CrossFamilyReferenceError(f"Habit {habit_id} does not belong to family {family_id}")
        return habit
