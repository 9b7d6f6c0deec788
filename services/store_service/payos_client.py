"""
PayOS API client for payment links, plus webhook signature helpers.

PayOS signs payloads with HMAC-SHA256 using the merchant checksum key over the
payload fields sorted by key and joined as ``key=value&key=value``.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from services.store_service.models import ORDER_CODE_PREFIX

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass
class PaymentLink:
    """Result of creating a PayOS payment request."""

    checkout_url: str
    payment_link_id: Optional[str]
    order_code: str
    amount: int


class PayOSError(Exception):
    """Base exception for PayOS API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def _canonical_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def canonical_string(data: dict) -> str:
    """``key=value`` pairs sorted by key, joined by ``&``; ``signature`` excluded."""
    return "&".join(
        f"{key}={_canonical_value(data[key])}"
        for key in sorted(data)
        if key != "signature"
    )


def sign_data(data: dict, checksum_key: str) -> str:
    return hmac.new(
        checksum_key.encode("utf-8"),
        canonical_string(data).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(data: dict, signature: Optional[str], checksum_key: str) -> bool:
    """Constant-time check of a payload signature. No key or no signature fails."""
    if not signature or not checksum_key:
        return False
    return hmac.compare_digest(sign_data(data, checksum_key), signature)


def payable_amount(amount) -> int:
    """Amount PayOS charges for an order total: whole dong, rounded half up."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def provider_order_code(order_code: str) -> int:
    """PayOS only accepts numeric order codes: drop our ORD prefix."""
    digits = order_code[len(ORDER_CODE_PREFIX):] if order_code.startswith(ORDER_CODE_PREFIX) else order_code
    return int(digits)


class PayOSClient:
    """Async client for the PayOS merchant API."""

    def __init__(
        self,
        client_id: str = None,
        api_key: str = None,
        checksum_key: str = None,
        base_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        self.client_id = client_id or settings.PAYOS_CLIENT_ID
        self.api_key = api_key or settings.PAYOS_API_KEY
        self.checksum_key = checksum_key or settings.PAYOS_CHECKSUM_KEY
        if not (self.client_id and self.api_key and self.checksum_key):
            raise PayOSError("PayOS credentials are not configured")
        self.base_url = (base_url or settings.PAYOS_BASE_URL).rstrip("/")
        self._transport = transport
        self._timeout = timeout
        self._headers = {
            "x-client-id": self.client_id,
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, endpoint: str, json_data: dict = None) -> dict:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method=method, url=url, headers=self._headers, json=json_data
                )
        except httpx.HTTPError as e:
            raise PayOSError(f"PayOS request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            logger.error(f"PayOS API error: {response.status_code} - {data}")
            raise PayOSError(
                message=data.get("desc", "Unknown PayOS error"),
                status_code=response.status_code,
                response_data=data,
            )

        if data.get("code") != "00":
            raise PayOSError(
                message=data.get("desc", "PayOS request failed"),
                response_data=data,
            )

        return data

    async def create_payment_link(
        self,
        order_code: str,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> PaymentLink:
        """
        Create a payment request for an order.

        Args:
            order_code: Our order code (ORD...)
            amount: Amount in VND; PayOS takes whole dong
            description: Shown on the bank transfer (PayOS caps it at 25 chars)

        Returns:
            PaymentLink with the hosted checkout URL
        """
        body = {
            "orderCode": provider_order_code(order_code),
            "amount": payable_amount(amount),
            "description": (description or order_code)[:25],
            "cancelUrl": settings.PAYMENT_CANCEL_URL,
            "returnUrl": settings.PAYMENT_RETURN_URL,
        }
        body["signature"] = sign_data(body, self.checksum_key)

        data = await self._request("POST", "/v2/payment-requests", json_data=body)
        link = data.get("data") or {}
        checkout_url = link.get("checkoutUrl")
        if not checkout_url:
            raise PayOSError("PayOS response is missing checkoutUrl", response_data=data)

        return PaymentLink(
            checkout_url=checkout_url,
            payment_link_id=link.get("paymentLinkId"),
            order_code=order_code,
            amount=body["amount"],
        )
