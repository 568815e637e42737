from fastapi import APIRouter, Depends, Query, status
from api.dependencies import (
    get_current_admin,
    get_payment_service,
    get_subscription_service,
    get_user_service,
)
from api.models import (
    ActivateSubscriptionRequest,
    AdminUserCreate,
    AdminUserResponse,
    AdminUserUpdate,
    MessageResponse,
    MonthsRequest,
    PasswordReset,
    PaymentResponse,
    SubscriptionResponse,
    UserResponse,
)
from api.services.payment_service import PaymentService
from api.services.subscription_service import SubscriptionService
from api.services.user_service import UserService
from db.models.user import User

router = APIRouter(prefix="/admin", tags=["admin"])


def _with_subscription(user: User, subscription_service: SubscriptionService) -> AdminUserResponse:
    subscription = subscription_service.get_current_subscription(user.id)
    response = AdminUserResponse.model_validate(user, from_attributes=True)
    response.subscription = SubscriptionResponse.from_subscription(subscription)
    response.has_subscription = subscription is not None
    response.has_active_subscription = subscription_service.is_active(subscription)
    return response


# ----- Users -----


@router.get("/users", response_model=list[AdminUserResponse])
def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return [_with_subscription(user, subscription_service) for user in user_service.list_users(skip, limit)]


@router.get("/users/{user_id}", response_model=AdminUserResponse)
def get_user(
    user_id: int,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return _with_subscription(user_service.get_by_id(user_id), subscription_service)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    body: AdminUserCreate,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.register(body.name, body.email, body.contact_number, body.password, is_admin=body.is_admin)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.admin_update_user(user_id, body.model_dump(exclude_unset=True))


@router.post("/users/{user_id}/reset-password", response_model=MessageResponse)
def reset_password(
    user_id: int,
    body: PasswordReset,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
):
    user_service.reset_password(user_id, body.new_password)
    return MessageResponse(message="Password reset successfully")


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
):
    user_service.delete_user(user_id, acting_user_id=admin.id)
    return MessageResponse(message="User deleted successfully")


# ----- Subscriptions -----


@router.get("/subscriptions", response_model=list[SubscriptionResponse])
def list_subscriptions(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    admin: User = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return [
        SubscriptionResponse.from_subscription(subscription)
        for subscription in subscription_service.list_subscriptions(skip, limit)
    ]


@router.post("/subscriptions/activate", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def activate_subscription(
    body: ActivateSubscriptionRequest,
    admin: User = Depends(get_current_admin),
    user_service: UserService = Depends(get_user_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    user = user_service.get_by_id(body.user_id)
    subscription = subscription_service.activate_without_payment(user.id, body.months)
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/subscriptions/{user_id}/extend", response_model=SubscriptionResponse)
def extend_subscription(
    user_id: int,
    body: MonthsRequest,
    admin: User = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    subscription = subscription_service.extend_subscription(user_id, body.months)
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/subscriptions/{user_id}/cancel", response_model=MessageResponse)
def cancel_subscription(
    user_id: int,
    admin: User = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    count = subscription_service.cancel_subscription(user_id)
    return MessageResponse(message=f"Cancelled {count} subscription(s)")


# ----- Payments -----


@router.get("/payments", response_model=list[PaymentResponse])
def list_payments(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    admin: User = Depends(get_current_admin),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return payment_service.list_payments(skip, limit)
