"""
Payment gateway client with provider abstraction.

Flutterwave v3 REST API: hosted checkout for mobile money, verification by
our transaction reference. Every call is bounded by a timeout; transport
failures surface as ``ExternalServiceFailure`` and never change state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from tutorug.config import get_settings
from tutorug.errors import ExternalServiceFailure
from tutorug.subscriptions.plans import Plan

logger = structlog.get_logger()

SERVICE_NAME = "payment_gateway"

DECLINE_STATUSES = frozenset({400, 404})


@dataclass
class ChargeCustomer:
    user_id: int
    phone_number: str
    email: str | None
    name: str


@dataclass
class ChargeResult:
    payment_url: str
    transaction_id: str
    gateway_ref: str | None = None


@dataclass
class Verification:
    succeeded: bool
    amount: int | None = None
    currency: str | None = None
    gateway_status: str | None = None


class BasePaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @abstractmethod
    async def create_charge(self, customer: ChargeCustomer, plan: Plan, transaction_id: str) -> ChargeResult:
        """Create a hosted-checkout charge."""
        ...

    @abstractmethod
    async def verify_transaction(self, transaction_id: str) -> Verification:
        """Ask the gateway whether ``transaction_id`` was paid."""
        ...


class FlutterwaveGateway(BasePaymentGateway):
    def __init__(
        self,
        secret_key: str,
        base_url: str,
        redirect_url: str,
        payment_options: str = "mobilemoneyuganda",
        logo_url: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.redirect_url = redirect_url
        self.payment_options = payment_options
        self.logo_url = logo_url
        self.timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._client or httpx.AsyncClient()
        try:
            return await client.request(
                method,
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning("payment_gateway_timeout", path=path)
            raise ExternalServiceFailure(SERVICE_NAME, "Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.warning("payment_gateway_unreachable", path=path, error=str(e))
            raise ExternalServiceFailure(SERVICE_NAME) from e
        finally:
            if self._client is None:
                await client.aclose()

    async def create_charge(self, customer: ChargeCustomer, plan: Plan, transaction_id: str) -> ChargeResult:
        response = await self._request(
            "POST",
            "/payments",
            json={
                "tx_ref": transaction_id,
                "amount": plan.amount,
                "currency": plan.currency,
                "redirect_url": self.redirect_url,
                "payment_options": self.payment_options,
                "customer": {
                    "email": customer.email or f"{customer.phone_number.lstrip('+')}@tutorug.com",
                    "phonenumber": customer.phone_number,
                    "name": customer.name,
                },
                "customizations": {
                    "title": "TutorUG Subscription",
                    "description": plan.description,
                    "logo": self.logo_url,
                },
                "meta": {
                    "user_id": customer.user_id,
                    "plan_id": plan.id,
                    "duration_months": plan.duration_months,
                },
            },
        )
        body = self._json_body(response, "charge")
        if response.status_code >= 400 or body.get("status") != "success":
            logger.warning(
                "payment_charge_rejected",
                status_code=response.status_code,
                message=body.get("message"),
            )
            raise ExternalServiceFailure(SERVICE_NAME, body.get("message") or "Payment initialization failed")

        data = body.get("data") or {}
        if not isinstance(data, dict) or not data.get("link"):
            logger.warning("payment_charge_malformed", status_code=response.status_code)
            raise ExternalServiceFailure(SERVICE_NAME, "Payment gateway returned no checkout link")
        return ChargeResult(
            payment_url=data["link"],
            transaction_id=transaction_id,
            gateway_ref=data.get("flw_ref"),
        )

    async def verify_transaction(self, transaction_id: str) -> Verification:
        response = await self._request(
            "GET",
            "/transactions/verify_by_reference",
            params={"tx_ref": transaction_id},
        )
        # 400/404 with a JSON body is the gateway's answer ("no such transaction");
        # anything else outside 2xx says nothing about the charge.
        if response.status_code >= 400 and response.status_code not in DECLINE_STATUSES:
            logger.warning("payment_verify_error", status_code=response.status_code)
            raise ExternalServiceFailure(SERVICE_NAME, f"Gateway error {response.status_code}")

        body = self._json_body(response, "verify")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ExternalServiceFailure(SERVICE_NAME, "Malformed verification response")
        gateway_status = data.get("status")
        succeeded = body.get("status") == "success" and gateway_status == "successful"
        try:
            amount = int(data["amount"]) if data.get("amount") is not None else None
        except (TypeError, ValueError) as e:
            raise ExternalServiceFailure(SERVICE_NAME, "Malformed verification amount") from e
        return Verification(
            succeeded=succeeded,
            amount=amount,
            currency=data.get("currency"),
            gateway_status=gateway_status or body.get("message"),
        )

    @staticmethod
    def _json_body(response: httpx.Response, operation: str) -> dict[str, Any]:
        """Decoded JSON object; proxy error pages and truncated bodies are gateway failures."""
        if not response.content:
            raise ExternalServiceFailure(SERVICE_NAME, f"Empty gateway response ({response.status_code})")
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(
                "payment_gateway_non_json",
                operation=operation,
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise ExternalServiceFailure(SERVICE_NAME, f"Gateway error {response.status_code}") from e
        if not isinstance(body, dict):
            raise ExternalServiceFailure(SERVICE_NAME, f"Gateway error {response.status_code}")
        return body


def create_payment_gateway() -> FlutterwaveGateway:
    settings = get_settings()
    return FlutterwaveGateway(
        secret_key=settings.payment_secret_key,
        base_url=settings.payment_base_url,
        redirect_url=settings.payment_redirect_url,
        payment_options=settings.payment_options,
        logo_url=settings.payment_logo_url,
        timeout=settings.external_timeout_seconds,
    )
