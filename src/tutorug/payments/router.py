"""Payment API endpoints."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import get_current_user
from tutorug.config import get_settings
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.dependencies import get_payment_service
from tutorug.errors import InvalidInput
from tutorug.payments.schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    PlanResponse,
    PlansResponse,
    VerifyPaymentResponse,
    WebhookAck,
)
from tutorug.payments.service import PaymentService
from tutorug.payments.webhook import signature_from_headers, verify_webhook_signature

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.get("/plans", response_model=PlansResponse)
async def list_plans():
    return PlansResponse(plans=[PlanResponse(**p) for p in PaymentService.list_plans()])


@router.post("/initiate", response_model=InitiatePaymentResponse)
async def initiate_payment(
    body: InitiatePaymentRequest,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return InitiatePaymentResponse(**await service.initiate(user, body.plan_id))


@router.post("/verify/{transaction_id}", response_model=VerifyPaymentResponse)
async def verify_payment(
    transaction_id: str,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Client-driven verification after the hosted checkout redirects back."""
    return VerifyPaymentResponse(**await service.verify_and_activate(transaction_id, user_id=user.id))


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway callback. The signature is checked against the raw body before anything else."""
    raw_body = await request.body()
    verify_webhook_signature(
        raw_body,
        signature_from_headers(request.headers),
        get_settings().payment_webhook_secret,
    )
    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise InvalidInput("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise InvalidInput("Webhook body must be a JSON object")
    return WebhookAck(**await service.handle_webhook(payload))


@router.get("/history", response_model=PaymentHistoryResponse)
async def payment_history(
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PaymentService = Depends(get_payment_service),
):
    return PaymentHistoryResponse(payments=[PaymentResponse(**p) for p in await service.history(db, user.id, limit)])
