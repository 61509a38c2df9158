"""
Derived-view cache.

Entries are keyed by (operation, params) where params is a tuple of the
arguments the view was computed from. Mutating operations never delete
entries directly: they register the exact operation and parameter prefix to
drop, and the drop happens once their transaction has committed.
"""

import time
from threading import Lock
from typing import Any, Callable, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from config import CACHE_TTL

_PENDING_KEY = "pending_invalidations"


class ViewCache:
    def __init__(self, ttl: int = CACHE_TTL, timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._timer = timer
        self._entries: dict[str, dict[tuple, tuple[float, Any]]] = {}
        self._lock = Lock()

    def get(self, operation: str, params: tuple) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(operation, {}).get(params)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._timer():
                del self._entries[operation][params]
                return None
            return value

    def put(self, operation: str, params: tuple, value: Any) -> None:
        with self._lock:
            self._entries.setdefault(operation, {})[params] = (self._timer() + self.ttl, value)

    def get_or_compute(self, operation: str, params: tuple, compute: Callable[[], Any]) -> Any:
        value = self.get(operation, params)
        if value is None:
            value = compute()
            self.put(operation, params, value)
        return value

    def invalidate(self, operation: str, *prefix) -> int:
        """Drop entries of operation whose params start with prefix (all when empty)."""
        with self._lock:
            entries = self._entries.get(operation)
            if not entries:
                return 0
            doomed = [params for params in entries if params[:len(prefix)] == prefix]
            for params in doomed:
                del entries[params]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


view_cache = ViewCache()


def invalidate_on_commit(db: Session, operation: str, *prefix) -> None:
    db.info.setdefault(_PENDING_KEY, []).append((operation, prefix))


@event.listens_for(Session, "after_commit")
def _apply_invalidations(session: Session) -> None:
    for operation, prefix in session.info.pop(_PENDING_KEY, []):
        view_cache.invalidate(operation, *prefix)


@event.listens_for(Session, "after_rollback")
def _discard_invalidations(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
