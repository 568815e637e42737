from fastapi import APIRouter, Cookie, Depends, Request, Response, status
from typing import Optional
import os
from api.models import MessageResponse, TokenResponse, UserCreate, UserLogin, UserResponse
from api.dependencies import get_subscription_service, get_user_service
from api.errors import NotAuthenticated
from api.rate_limit import limiter
from api.services.subscription_service import SubscriptionService
from api.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refresh_token"


def _secure_cookies() -> bool:
    return os.getenv("APP_ENV", "development") == "production"


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/hour")  # Strict limit for signup
def register(
    request: Request,
    body: UserCreate,
    user_service: UserService = Depends(get_user_service),
):
    return user_service.register(body.name, body.email, body.contact_number, body.password)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")  # Prevent brute force
def login(
    request: Request,
    response: Response,
    body: UserLogin,
    user_service: UserService = Depends(get_user_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    result = user_service.login(body.email, body.password)
    # Make a lapsed subscription's expiry durable now that the user is back
    subscription_service.refresh_current_status(result["user"].id)
    response.set_cookie(
        REFRESH_COOKIE,
        result["refresh_token"],
        httponly=True,
        secure=_secure_cookies(),
        samesite="lax",
        max_age=user_service.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return TokenResponse(access_token=result["access_token"], token_type="bearer")


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    refresh_token: Optional[str] = Cookie(None),
    user_service: UserService = Depends(get_user_service),
):
    if not refresh_token:
        raise NotAuthenticated("Refresh token not found")
    return user_service.refresh_access_token(refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(None),
    user_service: UserService = Depends(get_user_service),
):
    user_service.logout(refresh_token)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="Logged out successfully")
