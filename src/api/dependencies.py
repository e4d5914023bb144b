"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from starlette.requests import HTTPConnection

from relay.relay import SignalingRelay


def get_relay(connection: HTTPConnection) -> SignalingRelay:
    # Created per application in the lifespan handler (see main.py).
    return connection.app.state.relay
