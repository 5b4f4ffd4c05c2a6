import asyncio
import hashlib
import hmac
import logging
from typing import Optional

import httpx

from agrilink_orders.domain.models import ChargeAuthorization, ChargeOutcome, ChargeStatus
from agrilink_orders.domain.exceptions import GatewayError
from agrilink_orders.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)

# Final Paystack failures. "abandoned" is not one: the checkout stays payable
# until the pending TTL expires the order.
_FAILED_STATUSES = {"failed", "reversed"}


class HTTPPaystackClient(PaymentGateway):
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        secret_key: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay

    @property
    def _headers(self) -> dict:
        if not self._secret_key:
            raise GatewayError("Payment gateway not configured: PAYSTACK_SECRET_KEY missing")
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json"
        }

    async def initialize_charge(
        self,
        reference: str,
        amount_minor: int,
        currency: str,
        payer_email: str,
        metadata: dict,
        callback_url: Optional[str] = None,
    ) -> ChargeAuthorization:
        payload = {
            "email": payer_email,
            "amount": amount_minor,
            "currency": currency,
            "reference": reference,
            "metadata": metadata
        }
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            response = await self._client.post(
                f"{self._base_url}/transaction/initialize",
                json=payload,
                headers=self._headers,
                timeout=self._timeout
            )
        except httpx.RequestError as e:
            logger.error(f"Paystack connection error on initialize {reference}: {e}")
            raise GatewayError(f"Payment gateway unavailable: {e}")

        data = self._unwrap(response, "initialize")
        if not data.get("authorization_url"):
            raise GatewayError("Invalid response from payment gateway: missing authorization URL")

        logger.info(f"Paystack charge initialized: {reference}")
        return ChargeAuthorization(
            reference=data.get("reference") or reference,
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", "")
        )

    async def verify_charge(self, reference: str) -> ChargeOutcome:
        """Verification is a read, so transport errors and 5xx are retried"""
        response = None
        for attempt in range(self._max_retries):
            try:
                response = await self._client.get(
                    f"{self._base_url}/transaction/verify/{reference}",
                    headers=self._headers,
                    timeout=self._timeout
                )
                if response.status_code < 500:
                    break
                logger.warning(f"Paystack verify returned {response.status_code} (attempt {attempt + 1})")
            except httpx.RequestError as e:
                response = None
                logger.warning(f"Paystack verify error (attempt {attempt + 1}/{self._max_retries}): {e}")

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        if response is None:
            raise GatewayError(f"Payment gateway unavailable after {self._max_retries} attempts")

        data = self._unwrap(response, "verify")
        gateway_status = str(data.get("status", "")).lower()
        if gateway_status == "success":
            status = ChargeStatus.SUCCESS
        elif gateway_status in _FAILED_STATUSES:
            status = ChargeStatus.FAILED
        else:
            status = ChargeStatus.PENDING

        transaction_id = data.get("id")
        return ChargeOutcome(
            reference=data.get("reference") or reference,
            status=status,
            amount_minor=data.get("amount"),
            currency=data.get("currency"),
            paid_at=data.get("paid_at") or data.get("paidAt"),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            gateway_response=data.get("gateway_response")
        )

    def _unwrap(self, response: httpx.Response, operation: str) -> dict:
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code != 200 or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.error(f"Paystack {operation} failed: {message}")
            raise GatewayError(f"Payment gateway error: {message}")
        return body.get("data") or {}


def is_valid_signature(secret_key: str, payload: bytes, signature: Optional[str]) -> bool:
    """Paystack signs webhook bodies with HMAC-SHA512 of the secret key"""
    if not secret_key or not signature:
        return False
    expected = hmac.new(secret_key.encode(), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)
