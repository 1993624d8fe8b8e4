"""FastAPI application entry point for the flood kiosk control service.

This module provides the FastAPI application that hosts the control surface.
The lifespan builds a `KioskRuntime` on the running event loop and starts the
simulation tick loop; displays in the same process share its snapshot store.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Callable, Optional
import argparse
import logging
import os
import uvicorn

from flood_kiosk.api.v1.routes import api_router
from flood_kiosk.config import settings
from flood_kiosk.logging_setup import configure_logging
from flood_kiosk.scheduling.scheduler import AsyncioScheduler
from flood_kiosk.services.runtime import KioskRuntime

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[], KioskRuntime]


def _default_runtime() -> KioskRuntime:
    return KioskRuntime(AsyncioScheduler())


def _simulation_disabled() -> bool:
    return settings.DISABLE_SIMULATION or \
        os.getenv("DISABLE_SIMULATION", "").lower() in ["true", "1", "yes"]


def create_app(runtime_factory: Optional[RuntimeFactory] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    runtime_factory : callable, optional
        Builds the `KioskRuntime` when the app starts. Defaults to a runtime
        on an `AsyncioScheduler` configured from settings.

    Returns
    -------
    FastAPI
        Application with the control and snapshot routes mounted at /api/v1.
    """
    factory = runtime_factory or _default_runtime

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = factory()
        app.state.kiosk = runtime
        # Only start the tick loop if not disabled
        if not _simulation_disabled():
            runtime.start()
        else:
            logger.info("Simulation disabled; serving API only")
        try:
            yield
        finally:
            runtime.shutdown()
            app.state.kiosk = None

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


def serve(host: str = "0.0.0.0", port: int = 8008, simulation: bool = True) -> None:
    if not simulation:
        os.environ["DISABLE_SIMULATION"] = "true"
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Flood kiosk control service")
    parser.add_argument("--no-simulation", action="store_true",
                        help="Serve the API without starting the tick loop")
    parser.add_argument("--port", type=int, default=8008)
    args = parser.parse_args()
    serve(port=args.port, simulation=not args.no_simulation)
