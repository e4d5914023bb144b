"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    active_rooms: int = Field(alias="activeRooms")
    active_connections: int = Field(alias="activeConnections")
    timestamp: str


class ServiceInfoResponse(BaseModel):
    name: str
    version: str
    description: str
    endpoints: dict[str, str]
