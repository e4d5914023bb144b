"""Entry point for the SecureCall signaling relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router as status_router
from api.signaling_ws import router as signaling_router
from config.settings import get_settings
from relay.relay import SignalingRelay

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Membership lives in this process only; nothing about media or keys is kept.
    app.state.relay = SignalingRelay()
    yield
    LOGGER.info("Relay shutting down with %d active rooms", app.state.relay.room_count)


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="SecureCall Signaling Server",
    description="Signaling relay for end-to-end encrypted one-to-one calls.",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(status_router)
app.include_router(signaling_router)


def run() -> None:
    import uvicorn

    LOGGER.info("Starting SecureCall relay on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
