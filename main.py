from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import os
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, settings
from database import engine, Base, SessionLocal
from hub import build_hub
from log_config import setup_logging
from routers import api_router
from services.store import NotificationStore, SqlNotificationStore
import models.user  # ensure model registration
import models.conversation
import models.message

logger = logging.getLogger(__name__)


def _ensure_schema():
    # Alembic owns the schema in production; only auto-create for tests / SQLite / explicit dev flag
    if os.environ.get("TESTING") or engine.url.get_backend_name() == "sqlite" or os.environ.get("DEV_AUTO_CREATE") == "1":
        Base.metadata.create_all(bind=engine)


def create_app(store: Optional[NotificationStore] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings
    if store is None:
        _ensure_schema()
        store = SqlNotificationStore(SessionLocal)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings.LOG_LEVEL, app_settings.LOG_FILE)
        hub = build_hub(store, app_settings)
        app.state.hub = hub
        app.state.started_at = time.monotonic()
        await hub.start()
        try:
            yield
        finally:
            await hub.shutdown()

    app = FastAPI(title=app_settings.PROJECT_NAME, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix=app_settings.API_V1_STR)

    @app.get("/health")
    async def health():
        hub = app.state.hub
        database = "connected" if await hub.store.is_available() else "disconnected"
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": database,
            "uptime": round(time.monotonic() - app.state.started_at, 3),
            "connections": len(hub.registry),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
