from typing import Optional
from fastapi import APIRouter, Depends, status
from api.dependencies import get_current_user, get_payment_service, get_subscription_service
from api.models import MessageResponse, MonthsRequest, PriceResponse, SubscriptionResponse
from api.services.payment_service import PaymentService
from api.services.subscription_service import SubscriptionService
from db.models.user import User

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/price", response_model=PriceResponse)
def get_price(payment_service: PaymentService = Depends(get_payment_service)):
    return payment_service.get_price()


@router.get("/me", response_model=Optional[SubscriptionResponse])
def get_my_subscription(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    # No subscription is an ordinary state here: 200 with null, not 404
    subscription = subscription_service.get_current_subscription(current_user.id)
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/renew", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def renew_subscription(
    body: MonthsRequest,
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    subscription = subscription_service.renew_subscription(current_user.id, body.months)
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/cancel", response_model=MessageResponse)
def cancel_subscription(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    subscription_service.cancel_subscription(current_user.id)
    return MessageResponse(message="Subscription cancelled successfully")
