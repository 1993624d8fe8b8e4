"""Pydantic schemas for synchronization messages, snapshots and control commands.

Message envelope
----------------
Every message between surfaces is `{kind, data, timestamp}`. Three kinds are
defined:

- ``river``: sensor snapshot (`RiverSnapshot`)
- ``sky``: status / likelihood / ETA snapshot (`SkySnapshot`)
- ``control``: one of the `ControlCommand` variants

Consumers ignore kinds they do not know.
"""
from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from flood_kiosk.domain.status import DemoPhase, Status

logger = logging.getLogger(__name__)

KIND_RIVER = "river"
KIND_SKY = "sky"
KIND_CONTROL = "control"
KNOWN_KINDS = (KIND_RIVER, KIND_SKY, KIND_CONTROL)


class SyncMessage(BaseModel):
    kind: str
    data: Any = None
    # epoch milliseconds
    timestamp: float


class SnapshotRecord(BaseModel):
    """Durable last-value record kept per kind for late joiners."""
    timestamp: float
    data: Any = None


class RiverSnapshot(BaseModel):
    rain: int = Field(0, ge=0, le=100)
    water_level_m: float
    flow_rate_ms: float
    rainfall_mm_hr: float
    temp_c: float
    humidity_pct: float
    pressure_hpa: float
    discharge_q: float
    stage_pct: float
    # None when no overflow is expected at the current rain level
    eta_to_overflow_s: Optional[float] = None


class SkySnapshot(BaseModel):
    flood_likelihood_pct: float = Field(..., ge=0, le=100)
    eta_seconds: Optional[int] = Field(None, ge=0)
    eta_now: bool = False
    status: Status = Status.NORMAL
    phase: DemoPhase = DemoPhase.IDLE
    # looped asset the displays should show
    display_state: Literal["NORMAL", "RAIN"] = "NORMAL"


class SetRainLevel(BaseModel):
    type: Literal["SET_RAIN_LEVEL"] = "SET_RAIN_LEVEL"
    value: float = Field(..., ge=0, le=100)


class TriggerState(BaseModel):
    type: Literal["TRIGGER_STATE"] = "TRIGGER_STATE"
    state: Literal["NORMAL", "RAIN"]


class RunScript(BaseModel):
    type: Literal["SCRIPT"] = "SCRIPT"
    name: Literal["PM_MODE", "STOP"]


ControlCommand = Annotated[
    Union[SetRainLevel, TriggerState, RunScript], Field(discriminator="type")]

_command_adapter = TypeAdapter(ControlCommand)


def parse_command(data: Any) -> Optional[Union[SetRainLevel, TriggerState, RunScript]]:
    """Validate a control payload; invalid payloads are logged and yield None."""
    try:
        return _command_adapter.validate_python(data)
    except ValidationError as exc:
        logger.warning("Ignoring malformed control command %r: %s", data, exc.errors())
        return None


def parse_message(raw: Any) -> Optional[SyncMessage]:
    """Accept a `SyncMessage` or a dict shaped like one; anything else yields None."""
    if isinstance(raw, SyncMessage):
        return raw
    try:
        return SyncMessage.model_validate(raw)
    except ValidationError:
        logger.debug("Dropping malformed sync message %r", raw)
        return None


def command_payload(command: BaseModel) -> Dict[str, Any]:
    return command.model_dump(mode="json")
