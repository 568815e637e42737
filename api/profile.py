from fastapi import APIRouter, Depends
from api.dependencies import get_current_user, get_subscription_service, get_user_service
from api.errors import NotFound
from api.models import DashboardResponse, ProfileUpdate, SubscriptionResponse, UserResponse
from api.services.subscription_service import SubscriptionService
from api.services.user_service import UserService
from db.models.user import User

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/me", response_model=UserResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserResponse)
def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    # Only name and contact_number; email and is_admin are admin-managed
    return user_service.update_profile(current_user.id, body.model_dump(exclude_unset=True))


@router.get("/subscription", response_model=SubscriptionResponse)
def get_profile_subscription(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    subscription = subscription_service.get_current_subscription(current_user.id)
    if not subscription:
        raise NotFound("No subscription found")
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    subscription = subscription_service.get_current_subscription(current_user.id)
    return DashboardResponse(
        user=UserResponse.model_validate(current_user),
        subscription=SubscriptionResponse.from_subscription(subscription),
        has_active_subscription=subscription_service.is_active(subscription),
    )
