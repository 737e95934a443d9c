from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from .models import Badge, BadgeProgress, Member, MemberBadges

BADGES: Sequence[Badge] = (
    Badge(
        id="beginner",
        name="Getting Started",
        description="Earned your first 10 points",
        icon="star",
        threshold=10,
        color="#93c5fd",
    ),
    Badge(
        id="motivated",
        name="Motivated",
        description="Earned 50 points",
        icon="zap",
        threshold=50,
        color="#fbbf24",
    ),
    Badge(
        id="dedicated",
        name="Dedicated",
        description="Earned 100 points",
        icon="target",
        threshold=100,
        color="#34d399",
    ),
    Badge(
        id="champion",
        name="Champion",
        description="Earned 250 points",
        icon="award",
        threshold=250,
        color="#f97316",
    ),
    Badge(
        id="master",
        name="Habit Master",
        description="Earned 500 points",
        icon="trophy",
        threshold=500,
        color="#a855f7",
    ),
    Badge(
        id="legend",
        name="Legend",
        description="Earned 1000 points",
        icon="crown",
        threshold=1000,
        color="#ef4444",
    ),
)


def earned_badges(total_points: int, catalog: Sequence[Badge] = BADGES) -> List[Badge]:
    """
    Badges whose threshold ``total_points`` reaches.

    Each tier is checked on its own, so jumping past several thresholds
    between two checks unlocks all of them at once.
    """

    return [badge for badge in catalog if total_points >= badge.threshold]


def next_badge(total_points: int, catalog: Sequence[Badge] = BADGES) -> Optional[Badge]:
    pending = [badge for badge in catalog if total_points < badge.threshold]
    if not pending:
        return None
    return min(pending, key=lambda badge: badge.threshold)


def badge_ratio(total_points: int, badge: Badge) -> float:
    # Display only; earning is decided by earned_badges.
    if badge.threshold <= 0:
        return 1.0
    return min(max(total_points / badge.threshold, 0.0), 1.0)


def badge_progress(total_points: int, catalog: Sequence[Badge] = BADGES) -> List[BadgeProgress]:
    return [
        BadgeProgress(
            badge=badge,
            earned=total_points >= badge.threshold,
            ratio=badge_ratio(total_points, badge),
        )
        for badge in catalog
    ]


def compute_badges(member: Member, total_points: int, catalog: Sequence[Badge] = BADGES) -> MemberBadges:
    return MemberBadges(
        member=member,
        total_points=total_points,
        badges=tuple(earned_badges(total_points, catalog)),
        next_badge=next_badge(total_points, catalog),
        progress=tuple(badge_progress(total_points, catalog)),
    )


def compute_member_badges(
    roster: Sequence[Member],
    totals: Mapping[str, int],
    catalog: Sequence[Badge] = BADGES,
) -> List[MemberBadges]:
    """Badge rows in roster order."""
    return [compute_badges(member, totals.get(member.id, 0), catalog) for member in roster]
