"""Pydantic request/response models for payment endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PlanResponse(BaseModel):
    id: str
    name: str
    amount: int
    currency: str
    duration_months: int
    description: str


class PlansResponse(BaseModel):
    plans: list[PlanResponse]


class InitiatePaymentRequest(BaseModel):
    plan_id: str


class InitiatePaymentResponse(BaseModel):
    payment_url: str
    transaction_id: str
    amount: int
    currency: str
    plan_id: str


class PaymentResponse(BaseModel):
    transaction_id: str
    plan_id: str
    amount: int
    currency: str
    status: str
    failure_reason: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class VerifyPaymentResponse(PaymentResponse):
    activated: bool
    period_end_at: datetime | None = None


class PaymentHistoryResponse(BaseModel):
    payments: list[PaymentResponse]


class WebhookAck(BaseModel):
    status: str
    event: str | None = None
    payment_status: str | None = None
