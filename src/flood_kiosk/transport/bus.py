"""Publish/subscribe between surfaces with a durable last-value fallback.

`Transport` hides two interchangeable delivery backends chosen once, at
construction, by probing whether a live channel can be opened:

- channel backend: live messages over a `LiveChannel`
- store backend: change notifications from the `SnapshotStore`, plus a
  poll timer for stores that other processes write to

Both backends write every publish to the store so that late joiners get the
last payload immediately on `subscribe`. When the store is shared between
processes (file or Mongo), the channel backend also listens to the store so
that writes from other processes arrive; records already delivered live are
skipped by timestamp.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from flood_kiosk.persistence.schemas import SnapshotRecord, SyncMessage, parse_message
from flood_kiosk.persistence.snapshot_store import MemorySnapshotStore, SnapshotStore
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler
from flood_kiosk.transport.channel import LiveChannel, LocalBroadcastChannel

__all__ = ["Transport", "DEFAULT_CHANNEL"]

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "flood-sim"
DEFAULT_POLL_MS = 500

Deliver = Callable[[Any, float], None]
Unsubscribe = Callable[[], None]


class _ChannelBackend:
    mode = "channel"

    def __init__(self, channel: LiveChannel):
        self.channel = channel

    def post(self, message: SyncMessage) -> None:
        self.channel.post(message.model_dump(mode="json"))

    def listen(self, kind: str, deliver: Deliver) -> Unsubscribe:
        def on_message(raw):
            msg = parse_message(raw)
            if msg is None or msg.kind != kind:
                return
            deliver(msg.data, msg.timestamp)

        self.channel.add_listener(on_message)
        return lambda: self.channel.remove_listener(on_message)

    def close(self) -> None:
        self.channel.close()


class _StoreBackend:
    mode = "store"

    def __init__(self, transport: "Transport", scheduler: Optional[Scheduler], poll_ms: float):
        self.transport = transport
        self.scheduler = scheduler
        self.poll_ms = poll_ms
        self._poll_token: Optional[CancelToken] = None
        self._listeners = 0

    def post(self, message: SyncMessage) -> None:
        # Delivery happens through the store write done by the transport.
        pass

    def listen(self, kind: str, deliver: Deliver) -> Unsubscribe:
        transport = self.transport

        def on_change(changed_kind: str, record: SnapshotRecord):
            if changed_kind != kind or transport._publishing:
                return
            deliver(record.data, record.timestamp)

        remove = transport.store.add_listener(on_change)
        self._acquire_poll()
        released = []

        def unsubscribe():
            if released:
                return
            released.append(True)
            remove()
            self._release_poll()
        return unsubscribe

    def _acquire_poll(self) -> None:
        self._listeners += 1
        if self.scheduler is None or self._poll_token is not None:
            return
        self._poll_token = self.scheduler.schedule(self.poll_ms, self.transport.store.poll)

    def _release_poll(self) -> None:
        self._listeners = max(0, self._listeners - 1)
        if self._listeners == 0 and self._poll_token is not None:
            self._poll_token.cancel()
            self._poll_token = None

    def close(self) -> None:
        self._listeners = 0
        if self._poll_token is not None:
            self._poll_token.cancel()
            self._poll_token = None


class Transport:
    """Cross-surface publish/subscribe.

    Parameters
    ----------
    channel_name : str
        Name shared by every surface on the same kiosk.
    store : SnapshotStore, optional
        Durable last-value cache. Surfaces in the same process must share one
        instance; a private `MemorySnapshotStore` is used when omitted.
    scheduler : Scheduler, optional
        Runs the store poll timer (fallback mode, or shared stores). Without
        one, store delivery relies on in-process change notifications only.
    channel_factory : callable, optional
        Opens the live channel. Any exception it raises selects the store
        backend; None disables the live channel outright.
    poll_ms : float
        Poll interval for store delivery.
    """

    def __init__(self, channel_name: str = DEFAULT_CHANNEL,
                 store: Optional[SnapshotStore] = None,
                 scheduler: Optional[Scheduler] = None,
                 channel_factory: Optional[Callable[[str], LiveChannel]] = LocalBroadcastChannel,
                 poll_ms: float = DEFAULT_POLL_MS,
                 clock: Optional[Callable[[], float]] = None):
        self.channel_name = channel_name
        self.store = store if store is not None else MemorySnapshotStore()
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._publishing = False
        self._subscriptions: List[Unsubscribe] = []
        self.closed = False

        channel = None
        if channel_factory is not None:
            try:
                channel = channel_factory(channel_name)
            except Exception as e:
                logger.warning(
                    "Live channel %r unavailable (%s); using snapshot store delivery", channel_name, e)
        # Store listener alongside the live channel, for stores other processes write
        self._secondary: Optional[_StoreBackend] = None
        if channel is not None:
            self.backend = _ChannelBackend(channel)
            if self.store.shared:
                self._secondary = _StoreBackend(self, scheduler, poll_ms)
        else:
            self.backend = _StoreBackend(self, scheduler, poll_ms)

    @property
    def mode(self) -> str:
        return self.backend.mode

    def publish(self, kind: str, data: Any) -> Optional[SyncMessage]:
        """Broadcast `data` under `kind` and cache it as the latest record."""
        if self.closed:
            logger.debug("Publish on closed transport dropped (kind=%s)", kind)
            return None
        message = SyncMessage(kind=kind, data=data, timestamp=self._clock())
        try:
            self.backend.post(message)
        except Exception as e:
            logger.warning("Live publish of %r failed: %s", kind, e)
        self._publishing = True
        try:
            self.store.put(kind, SnapshotRecord(timestamp=message.timestamp, data=data))
        except Exception as e:
            logger.warning("Caching snapshot %r failed: %s", kind, e)
        finally:
            self._publishing = False
        return message

    def subscribe(self, kind: str, callback: Callable[[Any], None]) -> Unsubscribe:
        """Listen for `kind`; the cached payload, if any, is delivered right away.

        Returns a function that removes the live listener and the store path.
        """
        last = {"timestamp": float("-inf"), "data": None}

        def emit(data, timestamp):
            if timestamp >= last["timestamp"]:
                last["timestamp"] = timestamp
                last["data"] = data
            try:
                callback(data)
            except Exception:
                logger.exception("Subscriber for %r failed", kind)

        def deliver_stored(data, timestamp):
            # Older than, or identical to, what was already delivered
            if timestamp < last["timestamp"]:
                return
            if timestamp == last["timestamp"] and data == last["data"]:
                return
            emit(data, timestamp)

        try:
            record = self.store.get(kind)
        except Exception as e:
            logger.warning("Reading cached snapshot %r failed: %s", kind, e)
            record = None
        if record is not None:
            emit(record.data, record.timestamp)

        if isinstance(self.backend, _StoreBackend):
            removers = [self.backend.listen(kind, deliver_stored)]
        else:
            removers = [self.backend.listen(kind, emit)]
            if self._secondary is not None:
                removers.append(self._secondary.listen(kind, deliver_stored))

        def remove():
            for r in removers:
                r()
        self._subscriptions.append(remove)

        def unsubscribe():
            remove()
            if remove in self._subscriptions:
                self._subscriptions.remove(remove)
        return unsubscribe

    def latest(self, kind: str) -> Optional[SnapshotRecord]:
        try:
            return self.store.get(kind)
        except Exception as e:
            logger.warning("Reading cached snapshot %r failed: %s", kind, e)
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for remove in list(self._subscriptions):
            remove()
        self._subscriptions.clear()
        self.backend.close()
        if self._secondary is not None:
            self._secondary.close()
