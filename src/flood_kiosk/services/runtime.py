"""Wiring of scheduler, snapshot store, transport and control surface."""
import logging
from typing import Callable, Optional

from flood_kiosk.config import Settings, settings as default_settings
from flood_kiosk.persistence.snapshot_store import SnapshotStore, build_store
from flood_kiosk.scheduling.scheduler import Scheduler
from flood_kiosk.services.control_surface import ControlSurface
from flood_kiosk.services.display import DisplaySurface
from flood_kiosk.transport.bus import Transport
from flood_kiosk.transport.channel import LiveChannel, LocalBroadcastChannel

logger = logging.getLogger(__name__)


class KioskRuntime:
    """One control surface plus the transport it publishes on.

    Displays opened through `open_display` share the runtime's store, as
    browser tabs of one origin share their local storage.
    """

    def __init__(self, scheduler: Scheduler, config: Optional[Settings] = None,
                 store: Optional[SnapshotStore] = None,
                 rng: Optional[Callable[[], float]] = None,
                 channel_factory: Optional[Callable[[str], LiveChannel]] = LocalBroadcastChannel):
        self.config = config or default_settings
        self.scheduler = scheduler
        self.store = store if store is not None else build_store(
            self.config.STORE_BACKEND, self.config.SNAPSHOT_DIR,
            self.config.MONGODB_URL, self.config.MONGODB_NAME)
        self.channel_factory = channel_factory
        self.transport = self._transport()
        self.control = ControlSurface(
            self.transport, scheduler, rng=rng, tick_ms=self.config.TICK_MS,
            thresholds=self.config.thresholds(), toast_ttl_ms=self.config.TOAST_TTL_MS)
        self._displays = []

    def _transport(self) -> Transport:
        return Transport(self.config.CHANNEL_NAME, store=self.store, scheduler=self.scheduler,
                         channel_factory=self.channel_factory, poll_ms=self.config.STORE_POLL_MS)

    def start(self) -> None:
        self.control.start()

    def open_display(self, **kwargs) -> DisplaySurface:
        display = DisplaySurface(self._transport(), self.scheduler, **kwargs)
        display.open()
        self._displays.append(display)
        return display

    def shutdown(self) -> None:
        for display in self._displays:
            display.close()
            display.transport.close()
        self._displays.clear()
        self.control.stop()
        self.transport.close()
        self.store.close()
        self.scheduler.cancel_all()
        logger.info("Kiosk runtime shut down")
