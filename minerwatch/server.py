"""minerwatch HTTP server.

Exposes:
  GET  /api/listen?key=K                  — start monitoring a device
  GET  /api/shutdown?key=K                — stop monitoring a device
  GET  /api/stats?key=K&autostart=bool    — latest telemetry for a device
  GET  /health                            — liveness check

Start with::

    python -m minerwatch.server
    # or
    uvicorn minerwatch.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from minerwatch import __version__
from minerwatch.browser import BrowserLauncher
from minerwatch.config import Settings
from minerwatch.reader import SnapshotReader
from minerwatch.reaper import IdleReaper
from minerwatch.sessions import SessionManager
from minerwatch.telemetry import StatsResponse, build_stats

logger = logging.getLogger(__name__)

router = APIRouter()


# ──────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────

def _manager(request: Request) -> SessionManager:
    return request.app.state.manager


def _require_key(key: str | None, detail: str = "Key is required") -> str:
    if not key:
        raise HTTPException(status_code=400, detail=detail)
    return key


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@router.get("/health")
async def health(request: Request):
    manager = _manager(request)
    return {
        "status": "ok",
        "sessions": len(manager.registry),
        "pending": manager.pending,
    }


@router.get("/api/listen")
async def listen(request: Request, key: str | None = Query(None)):
    key = _require_key(key)
    manager = _manager(request)

    if manager.is_active(key):
        raise HTTPException(
            status_code=400,
            detail="Browser already listening or setup in progress for this key",
        )

    manager.launch(key)
    manager.touch(key)
    return {"message": f"Started listening for key: {key}"}


@router.get("/api/shutdown")
async def shutdown(request: Request, key: str | None = Query(None)):
    logger.info("Shutdown request received for key: %s", key)
    key = _require_key(key)
    manager = _manager(request)

    if not manager.is_active(key):
        raise HTTPException(status_code=404, detail="No active browser found for this key")

    await manager.shutdown(key)
    return {"message": f"Stopped listening for key: {key}"}


@router.get("/api/stats", response_model=StatsResponse)
async def stats(
    request: Request,
    key: str | None = Query(None),
    autostart: bool = Query(False),
):
    key = _require_key(key, "Key is required (last 5 chars in SN)")
    manager = _manager(request)

    if not manager.is_active(key):
        if not autostart:
            raise HTTPException(
                status_code=404,
                detail=(
                    f"Miner with key '{key}' is not monitored. Start monitor by calling "
                    f"/api/listen?key={key} or use autostart=true parameter"
                ),
            )
        manager.launch(key)

    manager.touch(key)

    reader: SnapshotReader = request.app.state.reader
    snapshot = await reader.wait(key)
    if snapshot is None:
        raise HTTPException(
            status_code=404,
            detail=f"No data available for key '{key}' after {reader.attempts} attempts",
        )
    return build_stats(snapshot)


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

def create_app(settings: Settings | None = None, launcher: Any = None) -> FastAPI:
    """Build the FastAPI app with its session manager, reaper and reader."""
    settings = settings or Settings.from_env()
    manager = SessionManager(launcher or BrowserLauncher(settings), settings)
    reaper = IdleReaper(
        manager,
        timeout=settings.inactivity_timeout,
        interval=settings.reaper_interval,
    )
    reader = SnapshotReader(
        manager.store,
        attempts=settings.read_attempts,
        settle_attempts=settings.settle_attempts,
        interval=settings.read_interval,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await manager.start()
        await reaper.start()
        try:
            yield
        finally:
            logger.info("Shutting down gracefully")
            await reaper.stop()
            await manager.close()

    app = FastAPI(title="minerwatch", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.manager = manager
    app.state.reaper = reaper
    app.state.reader = reader

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting minerwatch server on %s:%d", settings.host, settings.port)
    uvicorn.run("minerwatch.server:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
