from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
import hashlib
import hmac
import logging
import math

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError as RazorpayGatewayError, ServerError

from api.errors import GatewayAuthFailed, GatewayError, GatewayUnconfigured, InvalidAmount

logger = logging.getLogger(__name__)

WEBHOOK_SIGNATURE_HEADER = "x-razorpay-signature"


@dataclass
class GatewayOrder:
    order_id: str
    amount: int  # minor units (paise)
    currency: str
    status: str


def to_minor_units(amount: Union[int, float]) -> int:
    """299.00 -> 29900, rounding half away from zero like the provider does"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_amount(amount) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidAmount("Amount must be a number")
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount("Amount must be a positive number")
    return float(amount)


def _hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _error_message(exc: Exception) -> str:
    return str(exc.args[0]) if exc.args else str(exc)


def _signatures_match(expected: str, received: Optional[str]) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), (received or "").encode("utf-8"))


class RazorpayGateway:
    """Wraps the Razorpay API: orders plus payment and webhook signatures.

    The SDK client is only built on first use, so a gateway without
    credentials can still be constructed and answer signature checks.
    """

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        webhook_secret: Optional[str] = None,
        client=None,
    ):
        self.key_id = (key_id or "").strip()
        self.key_secret = (key_secret or "").strip()
        self.webhook_secret = (webhook_secret or "").strip()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    @property
    def client(self):
        if self._client is None:
            if not self.is_configured:
                logger.warning("Razorpay credentials not configured")
                raise GatewayUnconfigured(
                    "Payment gateway is not configured. "
                    "Please set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
                )
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
            logger.info("Razorpay client initialized")
        return self._client

    def create_order(self, amount: Union[int, float], currency: str = "INR", notes: Optional[dict] = None) -> GatewayOrder:
        amount = validate_amount(amount)
        client = self.client
        amount_minor = to_minor_units(amount)
        order_data = {
            "amount": amount_minor,
            "currency": currency,
            "payment_capture": 1,  # auto-capture
            "notes": notes or {"description": "Monthly subscription"},
        }
        logger.info(f"Creating Razorpay order: {amount_minor} {currency}")
        try:
            order = client.order.create(data=order_data)
        except BadRequestError as e:
            msg = _error_message(e)
            logger.error(f"Razorpay order creation failed: {msg}")
            if "authentication" in msg.lower():
                raise GatewayAuthFailed(
                    "Payment gateway authentication failed. Please check your API credentials."
                ) from e
            raise GatewayError(f"Payment gateway error: {msg}") from e
        except (ServerError, RazorpayGatewayError) as e:
            msg = _error_message(e)
            logger.error(f"Razorpay server error during order creation: {msg}")
            raise GatewayError(f"Payment gateway error: {msg}") from e
        except requests.RequestException as e:
            logger.error(f"Razorpay unreachable during order creation: {e}")
            raise GatewayError(f"Failed to create payment order: {e}") from e

        logger.info(f"Razorpay order created: {order.get('id')}")
        return GatewayOrder(
            order_id=order["id"],
            amount=order.get("amount", amount_minor),
            currency=order.get("currency", currency),
            status=order.get("status", "created"),
        )

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """HMAC-SHA256 of "{order_id}|{payment_id}" with the key secret"""
        if not self.key_secret:
            logger.error("Razorpay key secret not configured, cannot verify payment")
            return False
        expected = _hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        if _signatures_match(expected, signature):
            logger.info(f"Payment signature verified for order {order_id}")
            return True
        logger.error(f"Payment signature mismatch for order {order_id}")
        return False

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        """HMAC-SHA256 of the raw request body, before any JSON parsing"""
        if not self.webhook_secret:
            logger.error("Razorpay webhook secret not configured, cannot verify webhook")
            return False
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        expected = _hmac_sha256_hex(self.webhook_secret, raw_body)
        if _signatures_match(expected, signature):
            logger.info("Webhook signature verified")
            return True
        logger.error("Webhook signature mismatch")
        return False
