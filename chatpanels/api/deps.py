from __future__ import annotations

from fastapi import Request

from chatpanels.services.relay import RequestRelay


def get_relay(request: Request) -> RequestRelay:
    """The relay built at startup, sharing one HTTP client across requests."""
    return request.app.state.relay
