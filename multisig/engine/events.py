# multisig/engine/events.py
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, Optional

from multisig.core.types import TxType

logger = logging.getLogger(__name__)


class EventKind(Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"


@dataclass(frozen=True)
class EngineEvent:
    kind: EventKind
    tx_id: int
    tx_type: TxType
    owner_id: Optional[str] = None      # CONFIRMED only
    quorum_reached: bool = False
    receipt_id: Optional[str] = None    # EXECUTED only


Callback = Callable[[EngineEvent], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``. Cancelling twice is harmless."""

    def __init__(self, bus: "EventBus", key: int):
        self._bus = bus
        self._key = key

    @property
    def active(self) -> bool:
        return self._bus._has(self._key)

    def cancel(self) -> None:
        self._bus._remove(self._key)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()


class EventBus:
    """Explicit, per-engine subscriber registry."""

    def __init__(self):
        self._lock = threading.Lock()
        self._next_key = 0
        self._subscribers: Dict[int, tuple[Callback, Optional[FrozenSet[EventKind]]]] = {}

    def subscribe(self, callback: Callback, kinds: Optional[Iterable[EventKind]] = None) -> Subscription:
        wanted = frozenset(kinds) if kinds is not None else None
        with self._lock:
            key = self._next_key
            self._next_key += 1
            self._subscribers[key] = (callback, wanted)
        return Subscription(self, key)

    def publish(self, event: EngineEvent) -> None:
        with self._lock:
            targets = [cb for cb, wanted in self._subscribers.values()
                       if wanted is None or event.kind in wanted]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                # a broken subscriber must not undo a committed operation
                logger.exception(
                    "[multisig] Subscriber failed on %s event for transaction %s",
                    event.kind.value, event.tx_id,
                )

    def _has(self, key: int) -> bool:
        with self._lock:
            return key in self._subscribers

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscribers.pop(key, None)
