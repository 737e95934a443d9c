from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

COMPLETIONS_TABLE = "completions"
MEMBERS_TABLE = "family_members"
HABITS_TABLE = "habits"


@dataclass(frozen=True)
class ChangeEvent:
    family_id: str
    table: str


Listener = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """
    In-process change feed keyed by family id.

    Events only signal that something changed; listeners re-read the ledger
    rather than relying on the event contents.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, family_id: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(family_id, []).append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(family_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(family_id, None)

        return _unsubscribe

    def listener_count(self, family_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(family_id, []))

    def publish(self, family_id: str, table: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(family_id, []))
        event = ChangeEvent(family_id=family_id, table=table)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning("Change listener failed for family %s (%s): %s", family_id, table, exc)
