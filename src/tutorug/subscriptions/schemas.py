"""Pydantic response models for subscription endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SubscriptionStatusResponse(BaseModel):
    status: str | None
    effective_status: str
    plan: str | None = None
    has_access: bool
    is_trial_active: bool
    trial_end_at: datetime | None = None
    period_start_at: datetime | None = None
    period_end_at: datetime | None = None
    cancelled_at: datetime | None = None
    access_until: datetime | None = None
    days_remaining: int = 0
