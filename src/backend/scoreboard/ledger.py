from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from .models import Completion, Habit, Member


class LedgerUnavailableError(RuntimeError):
    """
    The backing store could not be read.

    Callers keep whatever they derived last time instead of zeroing it.
    """


class CompletionLedger:
    """
    Interface for reading a family's ledger.

    ``fetch_completions`` returns every completion of the family whose date
    is on or after ``since``, or the whole ledger when ``since`` is ``None``.
    Ordering of the result is not significant.
    """

    def fetch_completions(self, family_id: str, since: Optional[date] = None) -> Sequence[Completion]:
        raise NotImplementedError

    def fetch_members(self, family_id: str) -> Sequence[Member]:
        raise NotImplementedError

    def fetch_habits(self, family_id: str) -> Sequence[Habit]:
        raise NotImplementedError


class InMemoryCompletionLedger(CompletionLedger):
    """List-backed ledger used for inline payloads."""

    def __init__(
        self,
        members: Iterable[Member] = (),
        habits: Iterable[Habit] = (),
        completions: Iterable[Completion] = (),
    ) -> None:
        self.members = tuple(members)
        self.habits = tuple(habits)
        self.completions = tuple(completions)

    def fetch_completions(self, family_id: str, since: Optional[date] = None) -> Sequence[Completion]:
        return tuple(
            completion
            for completion in self.completions
            if completion.family_id == family_id and (since is None or completion.date >= since)
        )

    def fetch_members(self, family_id: str) -> Sequence[Member]:
        return tuple(member for member in self.members if member.family_id == family_id)

    def fetch_habits(self, family_id: str) -> Sequence[Habit]:
        return tuple(habit for habit in self.habits if habit.family_id == family_id)
