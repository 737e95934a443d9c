from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional, Tuple, Union

from .badges import compute_member_badges
from .ledger import CompletionLedger, LedgerUnavailableError
from .models import Scoreboard
from .notifications import ChangeEvent, ChangeNotifier
from .scoring import aggregate_points, build_catalog, rank_entries
from .timeframe import Timeframe, local_today, parse_timeframe, resolve_lower_bound

logger = logging.getLogger(__name__)

LEADERBOARD_VIEW = "leaderboard"
BADGES_VIEW = "badges"


class ScoreboardService:
    """
    Recomputes leaderboards and badge views from a family's ledger.

    Each call is one fetch followed by one pure reduction. The only state
    kept between calls is the last successful result per view, which is
    served back with ``stale=True`` when the ledger cannot be read.
    """

    def __init__(
        self,
        ledger: CompletionLedger,
        timezone_name: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.ledger = ledger
        self.timezone_name = timezone_name
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last: Dict[Tuple[str, str, str], Scoreboard] = {}

    def leaderboard(
        self,
        family_id: str,
        timeframe: Union[str, Timeframe] = Timeframe.TODAY,
        reference: Optional[date] = None,
    ) -> Scoreboard:
        window = parse_timeframe(timeframe)
        lower_bound = resolve_lower_bound(window, reference or self._reference_date())
        key = (family_id, LEADERBOARD_VIEW, window.value)

        try:
            roster = self.ledger.fetch_members(family_id)
            habits = self.ledger.fetch_habits(family_id)
            completions = self.ledger.fetch_completions(family_id, since=lower_bound)
        except LedgerUnavailableError as exc:
            logger.warning("Leaderboard refresh failed for family %s (%s): %s", family_id, window.value, exc)
            return self._stale(key, family_id, window, lower_bound)

        totals = aggregate_points(roster, build_catalog(habits), completions)
        result = Scoreboard(
            family_id=family_id,
            timeframe=window.value,
            lower_bound=lower_bound,
            leaderboard=tuple(rank_entries(roster, totals)),
            computed_at=self._clock(),
        )
        self._last[key] = result
        return result

    def badges(self, family_id: str) -> Scoreboard:
        """Badge view over the whole ledger."""
        key = (family_id, BADGES_VIEW, Timeframe.ALL.value)

        try:
            roster = self.ledger.fetch_members(family_id)
            habits = self.ledger.fetch_habits(family_id)
            completions = self.ledger.fetch_completions(family_id)
        except LedgerUnavailableError as exc:
            logger.warning("Badge refresh failed for family %s: %s", family_id, exc)
            return self._stale(key, family_id, Timeframe.ALL, None)

        totals = aggregate_points(roster, build_catalog(habits), completions)
        result = Scoreboard(
            family_id=family_id,
            timeframe=Timeframe.ALL.value,
            lower_bound=None,
            member_badges=tuple(compute_member_badges(roster, totals)),
            computed_at=self._clock(),
        )
        self._last[key] = result
        return result

    def last_result(
        self,
        family_id: str,
        view: str = LEADERBOARD_VIEW,
        timeframe: Union[str, Timeframe] = Timeframe.TODAY,
    ) -> Optional[Scoreboard]:
        return self._last.get((family_id, view, parse_timeframe(timeframe).value))

    def watch(
        self,
        notifier: ChangeNotifier,
        family_id: str,
        timeframe: Union[str, Timeframe] = Timeframe.TODAY,
        on_update: Optional[Callable[[Scoreboard, Scoreboard], None]] = None,
    ) -> Callable[[], None]:
        """
        Recompute both views whenever ``notifier`` fires for ``family_id``.

        Returns the unsubscribe callable. Overlapping recomputes are not
        ordered; whichever finishes last is what ``last_result`` reports.
        """

        window = parse_timeframe(timeframe)

        def _recompute(event: ChangeEvent) -> None:
            logger.debug("Recomputing scoreboard for family %s after %s change", event.family_id, event.table)
            leaderboard = self.leaderboard(family_id, window)
            badges = self.badges(family_id)
            if on_update is not None:
                on_update(leaderboard, badges)

        return notifier.subscribe(family_id, _recompute)

    def _reference_date(self) -> date:
        return local_today(self.timezone_name, self._clock())

    def _stale(
        self,
        key: Tuple[str, str, str],
        family_id: str,
        window: Timeframe,
        lower_bound: Optional[date],
    ) -> Scoreboard:
        previous = self._last.get(key)
        if previous is not None:
            return replace(previous, stale=True)
        return Scoreboard(family_id=family_id, timeframe=window.value, lower_bound=lower_bound, stale=True)
