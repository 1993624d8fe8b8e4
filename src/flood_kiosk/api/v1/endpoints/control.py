"""FastAPI endpoints for the operator control surface.

Each route acts on the `ControlSurface` owned by the running `KioskRuntime`
(stored on ``app.state.kiosk`` by the application lifespan). Everything a
route changes is published to the displays on the next tick, or immediately
for rain and display-state changes.

Routes are coroutines so that they run on the event loop thread, the same
thread that fires the tick timers.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from typing import Literal

from flood_kiosk.services.runtime import KioskRuntime

router = APIRouter()


async def get_runtime(request: Request) -> KioskRuntime:
    runtime = getattr(request.app.state, "kiosk", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Kiosk runtime is not running")
    return runtime


class RainRequest(BaseModel):
    """Request body for setting the rain intensity.

    Attributes
    ----------
    value:
        Rain intensity in percent; stored rounded to an integer.
    """
    value: float = Field(..., ge=0, le=100, examples=[70])


class TriggerRequest(BaseModel):
    # Which looped asset the displays show
    state: Literal["NORMAL", "RAIN"] = Field(..., examples=["RAIN"])


@router.get("/state")
async def get_state(runtime: KioskRuntime = Depends(get_runtime)):
    """Full control-surface snapshot: rain, sensors, likelihood, status, phase, ETA, toasts."""
    return runtime.control.snapshot()


@router.post("/rain")
async def set_rain(req: RainRequest, runtime: KioskRuntime = Depends(get_runtime)):
    rain = runtime.control.set_rain(req.value)
    return {"rain": rain}


@router.post("/demo/start")
async def start_demo(runtime: KioskRuntime = Depends(get_runtime)):
    """Start the scripted demo, restarting it cleanly if one is already running."""
    runtime.control.start_demo()
    return {"phase": runtime.control.demo.phase.value}


@router.post("/demo/stop")
async def stop_demo(runtime: KioskRuntime = Depends(get_runtime)):
    runtime.control.stop_demo()
    return {"phase": runtime.control.demo.phase.value}


@router.post("/trigger")
async def trigger_display(req: TriggerRequest, runtime: KioskRuntime = Depends(get_runtime)):
    runtime.control.trigger_display(req.state)
    return {"display_state": runtime.control.display_state}


@router.get("/toasts")
async def list_toasts(runtime: KioskRuntime = Depends(get_runtime)):
    return runtime.control.snapshot()["toasts"]


@router.delete("/toasts/{toast_id}")
async def dismiss_toast(toast_id: int, runtime: KioskRuntime = Depends(get_runtime)):
    if not runtime.control.dismiss_toast(toast_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Toast {toast_id} not found")
    return {"dismissed": toast_id}
