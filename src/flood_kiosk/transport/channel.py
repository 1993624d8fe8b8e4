"""Live best-effort channels between surfaces."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

__all__ = ["LiveChannel", "LocalBroadcastChannel", "ChannelClosedError"]

logger = logging.getLogger(__name__)

MessageListener = Callable[[Any], None]


class ChannelClosedError(RuntimeError):
    pass


class LiveChannel(ABC):
    """A named broadcast channel. Posts reach every other open peer, not the sender."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[MessageListener] = []
        self.closed = False

    @abstractmethod
    def post(self, message: Any) -> None:
        ...

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def close(self) -> None:
        self.closed = True
        self._listeners.clear()

    def _dispatch(self, message: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Channel %r listener failed", self.name)


class LocalBroadcastChannel(LiveChannel):
    """In-process broadcast channel keyed by name.

    Every instance opened with the same name is a peer. Delivery is
    synchronous and in peer-open order.
    """

    _peers: Dict[str, List["LocalBroadcastChannel"]] = {}

    def __init__(self, name: str):
        super().__init__(name)
        self._peers.setdefault(name, []).append(self)

    def post(self, message: Any) -> None:
        if self.closed:
            raise ChannelClosedError(f"Channel {self.name!r} is closed")
        for peer in list(self._peers.get(self.name, [])):
            if peer is not self and not peer.closed:
                peer._dispatch(message)

    def close(self) -> None:
        if self.closed:
            return
        super().close()
        peers = self._peers.get(self.name, [])
        if self in peers:
            peers.remove(self)
        if not peers:
            self._peers.pop(self.name, None)
