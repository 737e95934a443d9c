from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Sequence

from .models import Completion, Habit, LeaderboardEntry, Member

logger = logging.getLogger(__name__)


def build_catalog(habits: Iterable[Habit]) -> Dict[str, int]:
    return {habit.id: habit.points for habit in habits}


def aggregate_points(
    roster: Sequence[Member],
    catalog: Mapping[str, int],
    completions: Iterable[Completion],
) -> Dict[str, int]:
    """
    Reduce completions into a member id -> total points mapping.

    Every roster member is present, with 0 when they have no completions.
    Completions for habits missing from ``catalog`` (deleted after the fact)
    add nothing, and so do completions for members outside the roster.
    """

    totals: Dict[str, int] = {member.id: 0 for member in roster}
    skipped = defaultdict(int)

    for completion in completions:
        if completion.member_id not in totals:
            skipped["member"] += 1
            continue
        points = catalog.get(completion.habit_id)
        if points is None:
            skipped["habit"] += 1
            continue
        totals[completion.member_id] += max(0, int(completion.count)) * int(points)

    if skipped:
        logger.debug(
            "Ignored completions with unknown references: habits=%s members=%s",
            skipped["habit"],
            skipped["member"],
        )
    return totals


def rank_entries(roster: Sequence[Member], totals: Mapping[str, int]) -> List[LeaderboardEntry]:
    """
    Order the roster by points and assign competition ranks (1, 1, 3).

    ``sorted`` is stable, so tied members keep their roster order.
    """

    ordered = sorted(roster, key=lambda member: totals.get(member.id, 0), reverse=True)
    entries: List[LeaderboardEntry] = []
    current_rank = 1
    previous_points = None

    for position, member in enumerate(ordered):
        points = totals.get(member.id, 0)
        if previous_points is not None and points < previous_points:
            current_rank = position + 1
        entries.append(LeaderboardEntry(member=member, total_points=points, rank=current_rank))
        previous_points = points

    return entries


def compute_leaderboard(
    roster: Sequence[Member],
    habits: Iterable[Habit],
    completions: Iterable[Completion],
) -> List[LeaderboardEntry]:
    totals = aggregate_points(roster, build_catalog(habits), completions)
    return rank_entries(roster, totals)
