from fastapi import APIRouter
from flood_kiosk.api.v1.endpoints import control, snapshots

api_router = APIRouter()
api_router.include_router(control.router, prefix="", tags=["control"])
api_router.include_router(snapshots.router, prefix="", tags=["snapshots"])
