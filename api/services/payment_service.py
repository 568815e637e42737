from typing import Optional, Tuple
import json
import logging

from sqlalchemy.exc import IntegrityError

from api.errors import (
    Conflict,
    Forbidden,
    InvalidInput,
    NotFound,
    SignatureMismatch,
)
from api.services.payment_gateway import GatewayOrder, RazorpayGateway, to_minor_units, validate_amount
from api.services.subscription_service import SubscriptionService
from api.utils import utcnow
from db.models.payment import Payment, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_PENDING
from db.models.subscription import PLAN_MONTHLY
from db.models.user import User
from db.repositories.payment_repository import PaymentRepository

logger = logging.getLogger(__name__)

# Months granted per captured payment
MONTHS_PER_PAYMENT = 1

EVENT_PAYMENT_CAPTURED = "payment.captured"
EVENT_PAYMENT_FAILED = "payment.failed"


class PaymentService:
    """Order creation, client-confirmed verification and webhook reconciliation.

    Both the verify endpoint and the webhook settle a payment only while it is
    still pending, so each order renews the subscription at most once no
    matter which notification arrives first or how often.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        subscription_service: SubscriptionService,
        gateway: RazorpayGateway,
        price: float = 299.0,
        currency: str = "INR",
    ):
        self.payment_repo = payment_repo
        self.subscription_service = subscription_service
        self.gateway = gateway
        self.price = price
        self.currency = currency.upper()

    def get_price(self) -> dict:
        return {
            "price": self.price,
            "currency": self.currency,
            "price_in_minor_units": to_minor_units(self.price),
        }

    def create_order(self, user: User, amount, currency: Optional[str] = None) -> Tuple[GatewayOrder, Payment]:
        amount = validate_amount(amount)
        currency = (currency or self.currency).upper()
        logger.info(f"Creating payment order for user {user.email}: {amount} {currency}")
        order = self.gateway.create_order(
            amount,
            currency,
            notes={"description": "Monthly subscription", "user_id": str(user.id), "email": user.email},
        )
        now = utcnow()
        payment = self.payment_repo.create(
            Payment(
                user_id=user.id,
                email=user.email,
                plan_id=PLAN_MONTHLY,
                amount=amount,
                currency=currency,
                provider_order_id=order.order_id,
                status=PAYMENT_PENDING,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"Payment record {payment.id} created for order {order.order_id}")
        return order, payment

    def verify_payment(self, user: User, order_id: str, payment_id: str, signature: str) -> Payment:
        if not order_id or not payment_id or not signature:
            raise InvalidInput("All payment fields are required")

        payment = self.payment_repo.get_by_order_id(order_id)
        if not payment:
            logger.error(f"Verify for unknown order {order_id}")
            raise NotFound("Payment record not found")
        if payment.user_id != user.id:
            logger.warning(f"Payment user mismatch: payment.user_id={payment.user_id}, user.id={user.id}")
            raise Forbidden("Payment does not belong to current user")
        if not self.gateway.verify_payment_signature(order_id, payment_id, signature):
            raise SignatureMismatch("Invalid payment signature")

        if self._settle(order_id, PAYMENT_COMPLETED, provider_payment_id=payment_id, provider_signature=signature):
            self.subscription_service.renew_subscription(user.id, MONTHS_PER_PAYMENT)
            logger.info(f"Payment for order {order_id} verified, subscription renewed for user {user.id}")
        else:
            settled = self.payment_repo.get_by_order_id(order_id)
            if settled.status == PAYMENT_FAILED:
                raise InvalidInput("Payment has already been marked as failed")
            logger.info(f"Payment for order {order_id} was already completed, not renewing again")

        return self.payment_repo.get_by_order_id(order_id)

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> dict:
        """Verify, parse and apply one provider notification.

        Signature and parse failures raise. Anything that goes wrong after
        that is logged and swallowed: the provider always gets a success
        response so it does not keep retrying a delivery that can never work.
        """
        if not signature:
            logger.error("Webhook received without signature header")
            raise InvalidInput("Missing webhook signature")
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            raise SignatureMismatch("Invalid webhook signature")
        try:
            event = json.loads(raw_body)
        except ValueError:
            logger.error("Webhook body is not valid JSON")
            raise InvalidInput("Invalid webhook payload")
        if not isinstance(event, dict):
            raise InvalidInput("Invalid webhook payload")

        try:
            outcome = self.process_webhook_event(event)
            logger.info(f"Webhook {event.get('event')} processed: {outcome}")
        except Exception:
            self.payment_repo.rollback()
            logger.exception(f"Webhook processing error for event {event.get('event')}")
        return {"status": "success"}

    def process_webhook_event(self, event: dict) -> str:
        event_type = event.get("event", "")
        entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
        order_id = entity.get("order_id")
        provider_payment_id = entity.get("id")

        if event_type not in (EVENT_PAYMENT_CAPTURED, EVENT_PAYMENT_FAILED):
            return f"ignored:{event_type}"
        if not order_id:
            logger.warning(f"Webhook {event_type} without order id")
            return "no-order-id"

        payment = self.payment_repo.get_by_order_id(order_id)
        if not payment:
            logger.warning(f"Webhook {event_type} for unknown order {order_id}")
            return "unknown-order"
        user_id = payment.user_id

        if event_type == EVENT_PAYMENT_FAILED:
            if not self._settle(order_id, PAYMENT_FAILED):
                return "already-settled"
            self.payment_repo.commit()
            logger.info(f"Payment for order {order_id} marked failed")
            return "failed"

        if not self._settle(order_id, PAYMENT_COMPLETED, provider_payment_id=provider_payment_id or None):
            return "already-settled"
        if user_id:
            self.subscription_service.renew_subscription(user_id, MONTHS_PER_PAYMENT)
            logger.info(f"Payment for order {order_id} captured, subscription renewed for user {user_id}")
        else:
            self.payment_repo.commit()
            logger.info(f"Payment for order {order_id} captured for a deleted user, no subscription to renew")
        return "captured"

    def list_payments(self, skip: int = 0, limit: int = 100) -> list[Payment]:
        return self.payment_repo.list_all(skip, limit)

    def _settle(self, order_id: str, status: str, **fields) -> bool:
        """Stage pending -> status. Renewal (or an explicit commit) persists it."""
        try:
            return self.payment_repo.transition_from_pending(order_id, status, utcnow(), **fields)
        except IntegrityError:
            self.payment_repo.rollback()
            logger.error(f"Provider payment id for order {order_id} is already recorded on another payment")
            raise Conflict("Payment has already been recorded")
