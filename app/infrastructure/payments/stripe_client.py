from __future__ import annotations

import logging

import httpx

from app.application.exceptions import PaymentProviderError
from app.application.ports.payment_gateway import CardCapturePort
from app.core.config import settings
from app.domain.entities.payment import PaymentStatus


class StripeCardClient(CardCapturePort):
    """Finalises a PaymentIntent the customer confirmed client-side."""

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str = "https://api.stripe.com/v1",
        client: httpx.Client | None = None,
    ) -> None:
        self._secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self._base_url = base_url
        self._client = client or httpx.Client(timeout=15.0)
        self._logger = logging.getLogger(__name__)

        if not self._secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for Stripe payments")

    def capture(self, amount: float, currency: str, correlation_ref: str) -> PaymentStatus:
        intent = self._request("GET", f"/payment_intents/{correlation_ref}")

        if intent.get("status") == "requires_capture":
            intent = self._request("POST", f"/payment_intents/{correlation_ref}/capture")

        if intent.get("status") != "succeeded":
            self._logger.info(
                "Stripe payment not completed",
                extra={"correlation_id": correlation_ref, "reason": intent.get("status")},
            )
            return PaymentStatus.failed

        expected_cents = round(amount * 100)
        received = intent.get("amount_received") or intent.get("amount")
        if received != expected_cents or str(intent.get("currency", "")).lower() != currency.lower()[:3]:
            self._logger.error(
                "Stripe amount mismatch",
                extra={"correlation_id": correlation_ref, "expected": expected_cents, "received": received},
            )
            return PaymentStatus.failed
        return PaymentStatus.succeeded

    def _request(self, method: str, path: str) -> dict:
        headers = {"Authorization": f"Bearer {self._secret_key}"}
        try:
            response = self._client.request(method, f"{self._base_url}{path}", headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Stripe request failed: {e}") from e
