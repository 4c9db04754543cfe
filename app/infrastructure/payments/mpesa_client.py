from __future__ import annotations

import base64
import logging
import re
from datetime import datetime, timezone

import httpx

from app.application.exceptions import PaymentProviderError
from app.application.ports.payment_gateway import MobileMoneyPort
from app.core.config import settings
from app.domain.entities.payment import PaymentStatus

MPESA_SANDBOX = "https://sandbox.safaricom.co.ke"
MPESA_LIVE = "https://api.safaricom.co.ke"

# Daraja answers a status query with this error code while the customer has not responded yet.
STILL_PROCESSING_CODE = "500.001.1001"


def normalize_msisdn(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 9:
        raise ValueError("Invalid phone number")
    if digits.startswith("254"):
        return digits
    return "254" + digits.lstrip("0")


class MpesaClient(MobileMoneyPort):
    def __init__(
        self,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        shortcode: str | None = None,
        passkey: str | None = None,
        callback_url: str | None = None,
        base_url: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._consumer_key = consumer_key or settings.MPESA_CONSUMER_KEY
        self._consumer_secret = consumer_secret or settings.MPESA_CONSUMER_SECRET
        self._shortcode = shortcode or settings.MPESA_SHORTCODE
        self._passkey = passkey or settings.MPESA_PASSKEY
        self._callback_url = callback_url or settings.MPESA_CALLBACK_URL
        self._base_url = base_url or (MPESA_LIVE if settings.MPESA_ENV == "production" else MPESA_SANDBOX)
        self._client = client or httpx.Client(timeout=15.0)
        self._logger = logging.getLogger(__name__)

        if not (self._consumer_key and self._consumer_secret and self._shortcode and self._passkey):
            raise ValueError("M-Pesa is not fully configured (consumer key, secret, shortcode, passkey)")

    def initiate(self, amount: float, phone: str) -> str:
        msisdn = normalize_msisdn(phone)
        timestamp, password = self._password()
        payload = {
            "BusinessShortCode": self._shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": round(amount),
            "PartyA": msisdn,
            "PartyB": self._shortcode,
            "PhoneNumber": msisdn,
            "CallBackURL": self._callback_url,
            "AccountReference": "Booking",
            "TransactionDesc": "Booking payment",
        }
        response = self._post("/mpesa/stkpush/v1/processrequest", payload)
        if response.status_code >= 400:
            data = _json_or_empty(response)
            raise PaymentProviderError(data.get("errorMessage") or "STK push failed")

        checkout_id = _json_or_empty(response).get("CheckoutRequestID")
        if not checkout_id:
            raise PaymentProviderError("STK push returned no CheckoutRequestID")
        self._logger.info("STK push sent", extra={"correlation_id": checkout_id})
        return str(checkout_id)

    def poll(self, correlation_id: str) -> PaymentStatus:
        timestamp, password = self._password()
        payload = {
            "BusinessShortCode": self._shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "CheckoutRequestID": correlation_id,
        }
        response = self._post("/mpesa/stkpushquery/v1/query", payload)
        data = _json_or_empty(response)

        if response.status_code >= 400:
            if data.get("errorCode") == STILL_PROCESSING_CODE:
                return PaymentStatus.pending
            raise PaymentProviderError(data.get("errorMessage") or "Could not check payment status")

        raw = data.get("ResultCode")
        if raw is None:
            raw = ((data.get("Body") or {}).get("stkCallback") or {}).get("ResultCode")
        if raw is None:
            return PaymentStatus.pending
        try:
            result_code = int(raw)
        except (TypeError, ValueError):
            return PaymentStatus.pending

        if result_code == 0:
            return PaymentStatus.succeeded
        # 1032 cancelled by user, 1 insufficient funds, 1037 unreachable, ...
        self._logger.info(
            "M-Pesa payment not completed",
            extra={"correlation_id": correlation_id, "reason": data.get("ResultDesc"), "result_code": result_code},
        )
        return PaymentStatus.failed

    def _access_token(self) -> str:
        try:
            response = self._client.get(
                f"{self._base_url}/oauth/v1/generate",
                params={"grant_type": "client_credentials"},
                auth=(self._consumer_key, self._consumer_secret),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"M-Pesa auth failed: {e}") from e
        token = response.json().get("access_token")
        if not token:
            raise PaymentProviderError("No M-Pesa access token")
        return token

    def _post(self, path: str, payload: dict) -> httpx.Response:
        token = self._access_token()
        try:
            return self._client.post(
                f"{self._base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"M-Pesa request failed: {e}") from e

    def _password(self) -> tuple[str, str]:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        raw = f"{self._shortcode}{self._passkey}{timestamp}".encode("utf-8")
        return timestamp, base64.b64encode(raw).decode("ascii")


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
