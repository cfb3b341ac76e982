"""Operator tracking schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from .deliveries import FixModel


class TrackingSessionResponse(BaseModel):
    operator_id: str
    tracking: bool
    changed: bool


class LocationResponse(BaseModel):
    operator_id: str
    fix: FixModel
    accurate: bool
    age_seconds: float


class FixAccepted(BaseModel):
    operator_id: str
    accepted: bool = True
    tracking: bool
    message: Optional[str] = None
