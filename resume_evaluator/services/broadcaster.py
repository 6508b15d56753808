"""Per-evaluation status channel.

Subscribers register for ``(user_id, evaluation_id)``; a subscription with
``evaluation_id=None`` receives every event for that user. Delivery is
in-order and lossless for connected subscribers; nothing is replayed to a
subscriber that joins late. A subscription nobody has read from for
``subscription_ttl`` seconds is closed and dropped.

With ``relay="redis"`` events are published to ``resume:status:<user_id>``
and delivered by a listener thread, so a worker process and the web process
share one logical channel.
"""
import json
import logging
import queue
import threading
import time
import uuid
from typing import Dict, List, Optional, Tuple

from redis import Redis
from redis.exceptions import RedisError

from ..schemas import StatusEvent

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "resume:status:"

_CLOSED = object()


class Subscription:
    def __init__(self, broadcaster, user_id: str, evaluation_id: Optional[str]):
        self.id = str(uuid.uuid4())
        self.user_id = user_id
        self.evaluation_id = evaluation_id
        self.closed = False
        self.last_seen = time.monotonic()
        self._queue = queue.Queue()
        self._broadcaster = broadcaster

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (self.user_id, self.evaluation_id)

    def put(self, event: StatusEvent):
        if not self.closed:
            self._queue.put(event)

    def get(self, timeout: float = None) -> Optional[StatusEvent]:
        """Next event, or None on timeout or once the subscription is closed."""
        self.last_seen = time.monotonic()
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # keep the marker for any other reader blocked on this queue
            self._queue.put(_CLOSED)
            return None
        return item

    def drain(self, wait: float = 0) -> List[StatusEvent]:
        """Wait up to ``wait`` seconds for the first event, then take whatever is queued."""
        first = self.get(timeout=wait) if wait else self.get_nowait()
        if first is None:
            return []
        events = [first]
        while True:
            nxt = self.get_nowait()
            if nxt is None:
                return events
            events.append(nxt)

    def get_nowait(self) -> Optional[StatusEvent]:
        self.last_seen = time.monotonic()
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            return None
        return item

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._queue.put(_CLOSED)
        self._broadcaster.unsubscribe(self)

    def __iter__(self):
        # events queued before close() are still delivered
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ProgressBroadcaster:
    def __init__(self, relay: str = "local", redis_url: str = None, subscription_ttl: int = 120,
                 prune_interval: float = 5):
        self.relay = relay
        self.redis_url = redis_url
        self.subscription_ttl = subscription_ttl
        self.prune_interval = prune_interval
        self._last_prune = time.monotonic()
        self._lock = threading.Lock()
        self._subs: Dict[Tuple[str, Optional[str]], List[Subscription]] = {}
        self._by_id: Dict[str, Subscription] = {}
        self._redis = None
        self._pubsub = None
        self._listener = None
        self.started = False

    def init(self):
        if self.started:
            return
        if self.relay == "redis":
            if not self.redis_url:
                raise ValueError("STATUS_RELAY=redis needs REDIS_URL")
            self._redis = Redis.from_url(self.redis_url)
            self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
            self._pubsub.psubscribe(**{CHANNEL_PREFIX + "*": self._on_message})
            self._listener = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)
            logger.info("status relay listening on %s*", CHANNEL_PREFIX)
        self.started = True

    def shutdown(self):
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
        with self._lock:
            subs = list(self._by_id.values())
        for sub in subs:
            sub.close()
        self.started = False

    @property
    def relayed(self) -> bool:
        return self._listener is not None

    def emit(self, user_id: str, evaluation_id: str, event: StatusEvent):
        logger.info("resume:status user=%s evaluation=%s step=%s status=%s progress=%s",
                    user_id, evaluation_id, event.step, event.status, event.progress)
        if self.relayed:
            payload = json.dumps({"userId": user_id, "evaluationId": evaluation_id, "event": event.to_dict()})
            try:
                self._redis.publish(CHANNEL_PREFIX + str(user_id), payload)
                return
            except RedisError:
                logger.exception("status relay publish failed, delivering locally")
        self._deliver(user_id, evaluation_id, event)

    def _on_message(self, message):
        try:
            data = json.loads(message["data"])
            event = StatusEvent.from_dict(data["event"])
        except (ValueError, KeyError, TypeError):
            logger.warning("dropping malformed status message on %s", message.get("channel"))
            return
        self._deliver(data["userId"], data["evaluationId"], event)

    def _deliver(self, user_id, evaluation_id, event):
        self._maybe_prune()
        with self._lock:
            targets = list(self._subs.get((user_id, evaluation_id), ()))
            targets += self._subs.get((user_id, None), ())
        for sub in targets:
            sub.put(event)

    def subscribe(self, user_id: str, evaluation_id: str = None) -> Subscription:
        self._maybe_prune()
        sub = Subscription(self, user_id, evaluation_id)
        with self._lock:
            self._subs.setdefault(sub.key, []).append(sub)
            self._by_id[sub.id] = sub
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            self._by_id.pop(sub.id, None)
            subs = self._subs.get(sub.key)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    del self._subs[sub.key]
        if not sub.closed:
            sub.close()

    def get_subscription(self, subscription_id: str, user_id: str) -> Optional[Subscription]:
        self.prune_idle()
        with self._lock:
            sub = self._by_id.get(subscription_id)
        if sub is None or sub.user_id != user_id:
            return None
        return sub

    def prune_idle(self, now: float = None) -> int:
        now = now if now is not None else time.monotonic()
        with self._lock:
            stale = [s for s in self._by_id.values() if now - s.last_seen > self.subscription_ttl]
        for sub in stale:
            sub.close()
        return len(stale)

    def _maybe_prune(self):
        # abandoned long-poll subscriptions are only noticed here, so check now and then
        now = time.monotonic()
        with self._lock:
            if now - self._last_prune < self.prune_interval:
                return
            self._last_prune = now
        self.prune_idle(now)

    def subscriber_count(self, user_id: str = None) -> int:
        with self._lock:
            if user_id is None:
                return len(self._by_id)
            return sum(1 for s in self._by_id.values() if s.user_id == user_id)
