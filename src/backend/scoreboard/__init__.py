"""
Family habit scoreboard.

Derives ranked standings and badge unlocks from a family's completion
ledger for a selectable time window. Everything here is recomputed from the
ledger on demand; nothing derived is stored.
"""

from .badges import (  # noqa: F401
    BADGES,
    badge_progress,
    badge_ratio,
    compute_badges,
    compute_member_badges,
    earned_badges,
    next_badge,
)
from .ledger import CompletionLedger, InMemoryCompletionLedger, LedgerUnavailableError  # noqa: F401
from .models import (  # noqa: F401
    Badge,
    BadgeProgress,
    Completion,
    Family,
    Habit,
    LeaderboardEntry,
    Member,
    MemberBadges,
    Scoreboard,
)
from .notifications import ChangeEvent, ChangeNotifier  # noqa: F401
from .scoring import aggregate_points, build_catalog, compute_leaderboard, rank_entries  # noqa: F401
from .service import ScoreboardService  # noqa: F401
from .timeframe import (  # noqa: F401
    InvalidTimeframeError,
    Timeframe,
    local_today,
    parse_timeframe,
    resolve_lower_bound,
)
