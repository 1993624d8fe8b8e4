"""One-shot operator notifications on status transitions."""
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

from flood_kiosk.domain.status import Status
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler

__all__ = ["AlertKind", "AlertObservation", "Toast", "AlertNotifier", "detect_alerts", "TOAST_TTL_MS"]

logger = logging.getLogger(__name__)

TOAST_TTL_MS = 6000


class AlertKind(str, Enum):
    DANGER_ENTERED = "danger_entered"
    COUNTDOWN_STARTED = "countdown_started"


@dataclass(frozen=True)
class AlertObservation:
    status: Status
    countdown_active: bool = False


@dataclass(frozen=True)
class Toast:
    id: int
    kind: AlertKind
    title: str
    message: str
    created_at_ms: float


def detect_alerts(previous: Optional[AlertObservation], current: AlertObservation) -> List[AlertKind]:
    """Edges between two consecutive observations that warrant an alert."""
    events = []
    if current.status == Status.DANGER and (previous is None or previous.status != Status.DANGER):
        events.append(AlertKind.DANGER_ENTERED)
    if current.countdown_active and (previous is None or not previous.countdown_active):
        events.append(AlertKind.COUNTDOWN_STARTED)
    return events


def _render(kind: AlertKind, seconds: Optional[int]) -> tuple:
    if kind == AlertKind.DANGER_ENTERED:
        return ("Flood Danger",
                "Residents are being sent SMS to proceed to the nearest PPS "
                "(Pusat Pemindahan Sementara).")
    secs = seconds if seconds is not None else "?"
    return ("Early Flood Warning",
            f"Estimated flood in ~{secs}s for Klang River (Klang City). "
            "System will send SMS to residents and direct them to nearby PPS.")


class AlertNotifier:
    """Turns status edges into self-expiring toasts, at most once per kind per cycle."""

    def __init__(self, scheduler: Scheduler, ttl_ms: float = TOAST_TTL_MS):
        self.scheduler = scheduler
        self.ttl_ms = ttl_ms
        self._ids = itertools.count(1)
        self._fired: Set[AlertKind] = set()
        self._last: Optional[AlertObservation] = None
        self._toasts: Dict[int, Toast] = {}
        self._expiry: Dict[int, CancelToken] = {}

    @property
    def toasts(self) -> List[Toast]:
        return list(self._toasts.values())

    def fired(self, kind: AlertKind) -> bool:
        return kind in self._fired

    def observe(self, observation: AlertObservation, countdown_seconds: Optional[int] = None) -> List[Toast]:
        """Record the latest observation; returns any toasts raised by it."""
        raised = []
        for kind in detect_alerts(self._last, observation):
            if kind in self._fired:
                continue
            self._fired.add(kind)
            raised.append(self._push(kind, countdown_seconds))
        self._last = observation
        return raised

    def reset(self) -> None:
        """Start a new cycle: every alert may fire once more. Visible toasts stay.

        The last observation is kept, so an alert needs a fresh transition to fire.
        """
        self._fired.clear()

    def dismiss(self, toast_id: int) -> bool:
        token = self._expiry.pop(toast_id, None)
        if token is not None:
            token.cancel()
        return self._toasts.pop(toast_id, None) is not None

    def close(self) -> None:
        for token in self._expiry.values():
            token.cancel()
        self._expiry.clear()
        self._toasts.clear()

    def _push(self, kind: AlertKind, seconds: Optional[int]) -> Toast:
        title, message = _render(kind, seconds)
        toast = Toast(id=next(self._ids), kind=kind, title=title, message=message,
                      created_at_ms=self.scheduler.now_ms())
        self._toasts[toast.id] = toast
        self._expiry[toast.id] = self.scheduler.after(self.ttl_ms, lambda: self._expire(toast.id))
        logger.info("Alert raised: %s (%s)", title, kind.value)
        return toast

    def _expire(self, toast_id: int) -> None:
        self._expiry.pop(toast_id, None)
        self._toasts.pop(toast_id, None)
