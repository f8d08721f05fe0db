"""
In-process change feed.

Writers queue events on the SQLAlchemy session (`queue_event`); they are
published to subscribers only after the transaction commits, and dropped on
rollback. Subscribers receive a small `{"table", "event", ...}` dict and are
expected to refetch the affected list; events carry no row data.

The feed lives in one worker process. With several gunicorn workers a client
only sees events produced by the worker it is connected to, so clients must
also refetch on (re)connect.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections import defaultdict
from collections.abc import Iterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "doctrack_pending_events"
_SUBSCRIBER_QUEUE_SIZE = 100


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def document_channel(document_id: int) -> str:
    return f"document:{document_id}"


class Subscription:
    def __init__(self, feed: "ChangeFeed", channel: str):
        self.feed = feed
        self.channel = channel
        self.queue: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=_SUBSCRIBER_QUEUE_SIZE)

    def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self.feed.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, channel: str) -> Subscription:
        sub = Subscription(self, channel)
        with self._lock:
            self._subscribers[channel].append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.channel)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    del self._subscribers[sub.channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, payload: dict[str, Any]) -> int:
        with self._lock:
            subs = list(self._subscribers.get(channel, []))
        delivered = 0
        for sub in subs:
            try:
                sub.queue.put_nowait(payload)
                delivered += 1
            except queue.Full:
                # Slow consumer; it will still refetch on the next event it reads.
                logger.warning("change feed queue full channel=%s; dropping event", channel)
        return delivered


feed = ChangeFeed()


def queue_event(s: Session, channel: str, table: str, event_name: str, **extra: Any) -> None:
    """Publish `{"table", "event", **extra}` on `channel` once `s` commits."""
    pending = s.info.setdefault(_PENDING_KEY, [])
    pending.append((channel, {"table": table, "event": event_name, **extra}))


@event.listens_for(Session, "after_commit")
def _publish_after_commit(s: Session) -> None:
    pending = s.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for channel, payload in pending:
        feed.publish(channel, payload)


@event.listens_for(Session, "after_soft_rollback")
def _drop_after_rollback(s: Session, previous_transaction) -> None:
    s.info.pop(_PENDING_KEY, None)


def sse_stream(sub: Subscription, *, heartbeat_seconds: float = 15.0) -> Iterator[str]:
    """Server-Sent Events body for one subscription; closes it when the client goes away."""
    try:
        yield "event: ready\ndata: {}\n\n"
        while True:
            payload = sub.get(timeout=heartbeat_seconds)
            if payload is None:
                yield ": keep-alive\n\n"
                continue
            yield f"event: change\ndata: {json.dumps(payload, sort_keys=True)}\n\n"
    finally:
        sub.close()
