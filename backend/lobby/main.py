from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lobby.api.rooms import router as rooms_router
from lobby.core.config import Settings, get_settings
from lobby.core.logging_config import get_logger, setup_logging
from lobby.services.session import SessionController
from lobby.state.connections import ConnectionRegistry
from lobby.state.room_manager import RoomManager
from lobby.ws.manager import ConnectionManager
from lobby.ws.routes import router as ws_router

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    app = FastAPI(title="Raycast Lobby", version="0.1.0")
    app.state.settings = settings
    app.state.registry = ConnectionRegistry()
    app.state.room_manager = RoomManager(app.state.registry)
    app.state.ws_manager = ConnectionManager(app.state.registry)
    app.state.session = SessionController(
        app.state.registry,
        app.state.room_manager,
        app.state.ws_manager,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(rooms_router)
    app.include_router(ws_router)

    logger.info(f"Lobby application initialized (env={settings.app_env})")
    return app


app = create_app()
