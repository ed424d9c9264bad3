# Overview: Live query subscriptions driven by committed transactions.

"""
Live Queries

WHY: Screens (register summary, sales list, purchase history...) need to
refresh when another terminal commits. Subscribers register a fetch over
the tables they display; after every commit that touched one of those
tables the fetch runs again and the callback receives the fresh result.

DESIGN:
- after_flush collects the table names of new/dirty/deleted rows into
  session.info; after_commit publishes them; after_rollback discards them.
  Rolled-back work is never published.
- The callback fires once immediately with the current result.
- Fetches run in a short-lived Session on the subscription's engine;
  emitting SQL on the committing session is not allowed inside
  after_commit.
- A subscription never ends by itself; the returned unsubscribe() is the
  only cancellation. A failing fetch or callback is logged and skipped.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db


logger = logging.getLogger("pharmaledger.live_query")

_PENDING_KEY = "live_query_tables"


@dataclass
class _Subscription:
    id: int
    tables: frozenset
    fetch: Callable[[Session], Any]
    callback: Callable[[Any], None]
    engine: Any


class LiveQueryHub:
    def __init__(self):
        self._lock = threading.RLock()
        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        tables: Iterable[str],
        fetch: Callable[[Session], Any],
        callback: Callable[[Any], None],
    ) -> Callable[[], None]:
        """
        Register a live query. Returns unsubscribe().

        fetch(session) must return plain data (dicts/lists); ORM instances
        are detached once the fetch session closes.
        """
        sub = _Subscription(
            id=next(self._ids),
            tables=frozenset(tables),
            fetch=fetch,
            callback=callback,
            engine=db.engine,
        )
        with self._lock:
            self._subscriptions[sub.id] = sub

        self._deliver(sub)

        def unsubscribe() -> None:
            with self._lock:
                self._subscriptions.pop(sub.id, None)

        return unsubscribe

    def publish(self, tables: Iterable[str]) -> None:
        touched = set(tables)
        if not touched:
            return
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.tables & touched]
        for sub in targets:
            self._deliver(sub)

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def _deliver(self, sub: _Subscription) -> None:
        with self._lock:
            if sub.id not in self._subscriptions:
                return
        try:
            with Session(sub.engine) as session:
                result = sub.fetch(session)
        except Exception:
            logger.exception("Live query fetch failed (subscription %s)", sub.id)
            return
        try:
            sub.callback(result)
        except Exception:
            logger.exception("Live query callback failed (subscription %s)", sub.id)


hub = LiveQueryHub()


def subscribe(tables, fetch, callback) -> Callable[[], None]:
    return hub.subscribe(tables, fetch, callback)


@event.listens_for(Session, "after_flush")
def _collect_touched_tables(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, set())
    for obj in itertools.chain(session.new, session.dirty, session.deleted):
        table = getattr(type(obj), "__table__", None)
        if table is not None:
            pending.add(table.name)


@event.listens_for(Session, "after_commit")
def _publish_committed(session):
    touched = session.info.pop(_PENDING_KEY, None)
    if touched:
        hub.publish(touched)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back(session):
    session.info.pop(_PENDING_KEY, None)
