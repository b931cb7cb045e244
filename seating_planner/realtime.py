from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .models import Arrangement
    from .store import ArrangementStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArrangementEvent:
    type: str  # "update"
    arrangement_id: str
    version: int

    def to_dict(self) -> dict:
        return asdict(self)


EventCallback = Callable[[ArrangementEvent], None]


class ArrangementChannel:
    """
    In-process change feed for the arrangements table. Delivery is synchronous
    on the publishing thread; a failing subscriber is logged and skipped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, EventCallback] = {}
        self._next_token = 0

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ArrangementEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.values())
        for cb in callbacks:
            try:
                cb(event)
            except Exception:  # noqa: BLE001
                logger.exception("Realtime subscriber failed on %s event", event.type)


class RealtimeSubscriber:
    """
    Re-fetches the latest arrangement whenever an update event arrives and hands
    it to the callback. The event payload is only a trigger; no backlog is kept.
    """

    def __init__(
        self,
        store: "ArrangementStore",
        channel: ArrangementChannel,
        callback: Callable[["Arrangement"], None],
    ):
        self.store = store
        self.channel = channel
        self.callback = callback
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> "RealtimeSubscriber":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_event)
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "RealtimeSubscriber":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()

    def _on_event(self, event: ArrangementEvent) -> None:
        if event.type != "update":
            return
        logger.debug("Received realtime update: %s", event)
        latest = self.store.fetch_latest()
        if latest is None:
            return
        self.callback(latest)
