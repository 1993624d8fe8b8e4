"""Configuration management for the flood kiosk.

Settings come from environment variables and an optional `.env` file at the
repository root, via Pydantic Settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, ClassVar
import os

from flood_kiosk.domain.status import StatusThresholds


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Attributes
    ----------
    APP_NAME : str
        Application name identifier.
    CHANNEL_NAME : str
        Broadcast channel shared by the control surface and the displays.
    TICK_MS : int
        Sensor update interval in milliseconds.
    STORE_BACKEND : str
        Snapshot store for late joiners: "memory", "file" or "mongo".
    SNAPSHOT_DIR : str
        Directory used by the file store.
    STORE_POLL_MS : int
        Poll interval when delivery falls back to the snapshot store.
    MONGODB_URL : str
        MongoDB connection URL for the mongo store.
    MONGODB_NAME : str, optional
        Database name for the mongo store.
    WATCH_MIN, WARNING_MIN, DANGER_MIN : int
        Lower bounds of the WATCH, WARNING and DANGER likelihood buckets.
    TOAST_TTL_MS : int
        Lifetime of operator notifications.
    LOG_LEVEL : str
        Root logging level.
    DISABLE_SIMULATION : bool
        Serve the API without starting the tick loop.
    """
    APP_NAME: str = "flood-kiosk"
    CHANNEL_NAME: str = "flood-sim"
    TICK_MS: int = 250
    STORE_BACKEND: str = "memory"
    SNAPSHOT_DIR: str = "snapshots"
    STORE_POLL_MS: int = 500
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_NAME: Optional[str] = None
    WATCH_MIN: int = 40
    WARNING_MIN: int = 70
    DANGER_MIN: int = 80
    TOAST_TTL_MS: int = 6000
    LOG_LEVEL: str = "INFO"
    DISABLE_SIMULATION: bool = False

    env_path: ClassVar[str] = os.path.join(os.path.dirname(os.path.dirname(
        os.path.dirname(os.path.abspath(__file__)))), ".env")
    model_config = SettingsConfigDict(env_file=env_path, extra="ignore")

    def thresholds(self) -> StatusThresholds:
        """Status buckets; raises ValueError when they are not contiguous."""
        return StatusThresholds(self.WATCH_MIN, self.WARNING_MIN, self.DANGER_MIN)


settings = Settings()
