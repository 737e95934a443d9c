from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Sequence


@dataclass(frozen=True)
class Family:
    """
    Top-level scope grouping members, habits and completions.

    ``join_code`` is the short human-shareable code other devices use to
    attach to the family.
    """

    id: str
    name: str
    join_code: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Member:
    id: str
    family_id: str
    name: str
    avatar: str = ""
    color: str = ""
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Habit:
    """
    A family habit worth ``points`` per completion.

    The three targets only drive progress bars in the UI; they never affect
    scoring.
    """

    id: str
    family_id: str
    name: str
    points: int
    icon: str = ""
    unit: str = "times"
    daily_target: int = 1
    weekly_target: int = 7
    monthly_target: int = 30
    category: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Completion:
    """
    One ledger row: how many times ``member_id`` did ``habit_id`` on ``date``.

    There is at most one row per (member, habit, date) and ``count`` is
    never negative.
    """

    id: str
    family_id: str
    member_id: str
    habit_id: str
    date: date
    count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    threshold: int
    color: str


@dataclass(frozen=True)
class LeaderboardEntry:
    member: Member
    total_points: int
    rank: int


@dataclass(frozen=True)
class BadgeProgress:
    badge: Badge
    earned: bool
    ratio: float


@dataclass(frozen=True)
class MemberBadges:
    member: Member
    total_points: int
    badges: Sequence[Badge]
    next_badge: Optional[Badge] = None
    progress: Sequence[BadgeProgress] = field(default_factory=tuple)


@dataclass(frozen=True)
class Scoreboard:
    """
    Result envelope for one recomputation.

    ``stale`` is set when the ledger could not be read and the content is
    the last successfully computed result (or empty when there is none).
    ``lower_bound`` is ``None`` for the all-time window.
    """

    family_id: str
    timeframe: str
    lower_bound: Optional[date]
    leaderboard: Sequence[LeaderboardEntry] = field(default_factory=tuple)
    member_badges: Sequence[MemberBadges] = field(default_factory=tuple)
    computed_at: Optional[datetime] = None
    stale: bool = False

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the nested dataclasses into a JSON-serialisable structure.
        """

        def _serialize(obj: Any) -> Any:
            if isinstance(obj, Scoreboard):
                return {
                    "familyId": obj.family_id,
                    "timeframe": obj.timeframe,
                    "lowerBound": None if obj.lower_bound is None else obj.lower_bound.isoformat(),
                    "leaderboard": [_serialize(entry) for entry in obj.leaderboard],
                    "memberBadges": [_serialize(row) for row in obj.member_badges],
                    "computedAt": None if obj.computed_at is None else obj.computed_at.isoformat(),
                    "stale": obj.stale,
                }
            if isinstance(obj, LeaderboardEntry):
                return {
                    "member": _serialize(obj.member),
                    "totalPoints": obj.total_points,
                    "rank": obj.rank,
                }
            if isinstance(obj, MemberBadges):
                return {
                    "member": _serialize(obj.member),
                    "totalPoints": obj.total_points,
                    "badges": [_serialize(badge) for badge in obj.badges],
                    "nextBadge": None if obj.next_badge is None else _serialize(obj.next_badge),
                    "progress": [_serialize(item) for item in obj.progress],
                }
            if isinstance(obj, BadgeProgress):
                return {"badgeId": obj.badge.id, "earned": obj.earned, "ratio": obj.ratio}
            if isinstance(obj, Badge):
                return {
                    "id": obj.id,
                    "name": obj.name,
                    "description": obj.description,
                    "icon": obj.icon,
                    "threshold": obj.threshold,
                    "color": obj.color,
                }
            if isinstance(obj, Member):
                return {
                    "id": obj.id,
                    "familyId": obj.family_id,
                    "name": obj.name,
                    "avatar": obj.avatar,
                    "color": obj.color,
                }
            if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
                return [_serialize(item) for item in obj]
            return obj

        return _serialize(self)
