"""Relay endpoint schemas (POST /api/line/push)."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class RelayRequest(BaseModel):
    """Message to forward; missing, null or empty fields are rejected by the endpoint with 400."""

    credential: Optional[str] = None
    destination: Optional[str] = None
    text: Optional[str] = None


class RelayResult(BaseModel):
    """Outcome of one send, shared by the relay endpoint and its client."""

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Any] = None
