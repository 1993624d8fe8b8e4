from .schemas import (KIND_CONTROL, KIND_RIVER, KIND_SKY, RiverSnapshot, RunScript,
                      SetRainLevel, SkySnapshot, SnapshotRecord, SyncMessage, TriggerState,
                      parse_command, parse_message)
from .snapshot_store import (FileSnapshotStore, MemorySnapshotStore, MongoSnapshotStore,
                             SnapshotStore, build_store)

__all__ = [
    "KIND_CONTROL", "KIND_RIVER", "KIND_SKY", "RiverSnapshot", "RunScript", "SetRainLevel",
    "SkySnapshot", "SnapshotRecord", "SyncMessage", "TriggerState", "parse_command",
    "parse_message", "FileSnapshotStore", "MemorySnapshotStore", "MongoSnapshotStore",
    "SnapshotStore", "build_store",
]
