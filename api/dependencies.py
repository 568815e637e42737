# api/dependencies.py
from typing import Optional
import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from api.errors import Forbidden, NotAuthenticated
from api.services.contact_service import ContactService
from api.services.payment_gateway import RazorpayGateway
from api.services.payment_service import PaymentService
from api.services.subscription_service import SubscriptionService
from api.services.user_service import UserService
from db.engine import SessionLocal
from db.models.user import User
from db.repositories.contact_repository import ContactRepository
from db.repositories.payment_repository import PaymentRepository
from db.repositories.settings_repository import SettingsRepository
from db.repositories.subscription_repository import SubscriptionRepository
from db.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings_repository(db: Session = Depends(get_db)):
    return SettingsRepository(db)


def get_user_service(db: Session = Depends(get_db)):
    return UserService(UserRepository(db))


def get_subscription_service(db: Session = Depends(get_db)):
    return SubscriptionService(SubscriptionRepository(db))


def get_contact_service(db: Session = Depends(get_db)):
    return ContactService(ContactRepository(db))


def get_payment_gateway(
    request: Request,
    settings_repo: SettingsRepository = Depends(get_settings_repository),
) -> RazorpayGateway:
    """One gateway per process, built on first use and kept once it has credentials.

    The webhook secret is re-read on every request so a rotated secret takes
    effect without a restart.
    """
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is not None:
        gateway.webhook_secret = (settings_repo.get_setting("RAZORPAY_WEBHOOK_SECRET") or "").strip()
        return gateway
    gateway = RazorpayGateway(
        key_id=settings_repo.get_setting("RAZORPAY_KEY_ID"),
        key_secret=settings_repo.get_setting("RAZORPAY_KEY_SECRET"),
        webhook_secret=settings_repo.get_setting("RAZORPAY_WEBHOOK_SECRET"),
    )
    if gateway.is_configured:
        request.app.state.payment_gateway = gateway
    else:
        logger.warning("Razorpay credentials not configured, payments are disabled")
    return gateway


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    settings_repo: SettingsRepository = Depends(get_settings_repository),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return PaymentService(
        PaymentRepository(db),
        subscription_service,
        gateway,
        price=settings_repo.get_float("SUBSCRIPTION_PRICE", 299.0),
        currency=settings_repo.get_setting("SUBSCRIPTION_CURRENCY", "INR"),
    )


def get_current_user(
    request: Request,
    user_service: UserService = Depends(get_user_service),
) -> User:
    return user_service.get_current_user_from_request(request)


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        logger.warning(f"Non-admin user {current_user.id} attempted an admin action")
        raise Forbidden("Admin access required")
    return current_user


def get_optional_user(
    request: Request,
    user_service: UserService = Depends(get_user_service),
) -> Optional[User]:
    if not request.headers.get("Authorization"):
        return None
    try:
        return user_service.get_current_user_from_request(request)
    except NotAuthenticated:
        return None
