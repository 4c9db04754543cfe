from __future__ import annotations

import logging

import httpx

from app.application.exceptions import PaymentProviderError
from app.application.ports.payment_gateway import CardCapturePort
from app.core.config import settings
from app.domain.entities.payment import PaymentStatus


class PayPalCardClient(CardCapturePort):
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_base: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._client_id = client_id or settings.PAYPAL_CLIENT_ID
        self._client_secret = client_secret or settings.PAYPAL_CLIENT_SECRET
        self._api_base = api_base or settings.PAYPAL_API_BASE
        self._client = client or httpx.Client(timeout=15.0)
        self._logger = logging.getLogger(__name__)

        if not self._client_id or not self._client_secret:
            raise ValueError("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET must be set for PayPal payments")

    def capture(self, amount: float, currency: str, correlation_ref: str) -> PaymentStatus:
        token = self._access_token()
        try:
            response = self._client.post(
                f"{self._api_base}/v2/checkout/orders/{correlation_ref}/capture",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                json={},
            )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"PayPal capture failed: {e}") from e

        if response.status_code >= 400:
            self._logger.error(
                "PayPal capture rejected",
                extra={"correlation_id": correlation_ref, "status_code": response.status_code},
            )
            return PaymentStatus.failed

        data = response.json()
        if data.get("status") != "COMPLETED":
            return PaymentStatus.failed

        captured = _captured_value(data)
        if captured is not None and abs(captured - amount) > 0.005:
            self._logger.error(
                "PayPal amount mismatch",
                extra={"correlation_id": correlation_ref, "expected": amount, "received": captured},
            )
            return PaymentStatus.failed
        return PaymentStatus.succeeded

    def _access_token(self) -> str:
        try:
            response = self._client.post(
                f"{self._api_base}/v1/oauth2/token",
                auth=(self._client_id, self._client_secret),
                data={"grant_type": "client_credentials"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"PayPal auth failed: {e}") from e
        token = response.json().get("access_token")
        if not token:
            raise PaymentProviderError("No PayPal access token")
        return token


def _captured_value(data: dict) -> float | None:
    try:
        capture = data["purchase_units"][0]["payments"]["captures"][0]
        return float(capture["amount"]["value"])
    except (KeyError, IndexError, TypeError, ValueError):
        return None
