"""HTTP status surface of the relay process."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.dependencies import get_relay
from api.schemas import HealthResponse, ServiceInfoResponse
from relay.relay import SignalingRelay

SERVICE_NAME = "SecureCall Signaling Server"
SERVICE_VERSION = "1.0.0"

router = APIRouter()


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health(relay: SignalingRelay = Depends(get_relay)) -> HealthResponse:
    return HealthResponse(
        active_rooms=relay.room_count,
        active_connections=relay.connection_count,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/", response_model=ServiceInfoResponse)
async def service_info() -> ServiceInfoResponse:
    return ServiceInfoResponse(
        name=SERVICE_NAME,
        version=SERVICE_VERSION,
        description="WebRTC signaling relay for end-to-end encrypted calls",
        endpoints={"health": "/health", "signaling": "/ws"},
    )
