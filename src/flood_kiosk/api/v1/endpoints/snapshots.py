"""Late-joiner access to the last published snapshot of each kind.

A display that starts after the control surface can read the cached
``river``, ``sky`` or ``control`` record here instead of waiting for the
next publish.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from flood_kiosk.api.v1.endpoints.control import get_runtime
from flood_kiosk.services.runtime import KioskRuntime

router = APIRouter()


@router.get("/snapshots/{kind}")
async def get_snapshot(kind: str, runtime: KioskRuntime = Depends(get_runtime)):
    """Return ``{kind, timestamp, data}`` for the latest record of `kind`.

    Raises
    ------
    HTTPException
        404 when nothing has been published under `kind` yet.
    """
    record = runtime.transport.latest(kind)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"No snapshot published for kind '{kind}'")
    return {"kind": kind, "timestamp": record.timestamp, "data": record.data}
