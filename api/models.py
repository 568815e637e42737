from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    constr,
    field_validator,
)
from datetime import datetime
from typing import Optional
import re

from api.utils import is_subscription_active


def _strip_tags(value: Optional[str]) -> Optional[str]:
    if value:
        # Remove any HTML/script tags
        return re.sub(r'<[^>]+>', '', value).strip()
    return value


class UserCreate(BaseModel):
    name: constr(min_length=1, max_length=100, strip_whitespace=True)  # type: ignore
    email: EmailStr
    contact_number: constr(min_length=1, max_length=20, strip_whitespace=True)  # type: ignore
    password: constr(min_length=8, max_length=100)  # type: ignore

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, name):
        return _strip_tags(name)


class AdminUserCreate(UserCreate):
    is_admin: bool = False


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    name: Optional[constr(min_length=1, max_length=100, strip_whitespace=True)] = None  # type: ignore
    contact_number: Optional[constr(min_length=1, max_length=20, strip_whitespace=True)] = None  # type: ignore

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, name):
        return _strip_tags(name)


class AdminUserUpdate(ProfileUpdate):
    email: Optional[EmailStr] = None
    is_admin: Optional[bool] = None


class PasswordReset(BaseModel):
    new_password: constr(min_length=8, max_length=100)  # type: ignore


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    contact_number: Optional[str] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @field_validator("is_admin", mode="before")
    @classmethod
    def default_is_admin(cls, is_admin):
        # Legacy rows may predate the flag
        return bool(is_admin)


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    plan_id: str
    status: str
    start_date: datetime
    end_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    is_active: bool = False

    @classmethod
    def from_subscription(cls, subscription) -> Optional["SubscriptionResponse"]:
        if subscription is None:
            return None
        response = cls.model_validate(subscription)
        response.is_active = is_subscription_active(subscription)
        return response


class AdminUserResponse(UserResponse):
    subscription: Optional[SubscriptionResponse] = None
    has_subscription: bool = False
    has_active_subscription: bool = False


class DashboardResponse(BaseModel):
    user: UserResponse
    subscription: Optional[SubscriptionResponse] = None
    has_active_subscription: bool = False


class MonthsRequest(BaseModel):
    months: int = 1


class ActivateSubscriptionRequest(BaseModel):
    user_id: int
    months: int = 1


class PriceResponse(BaseModel):
    price: float
    currency: str
    price_in_minor_units: int


class CreateOrderRequest(BaseModel):
    amount: Optional[float] = None
    currency: str = "INR"


class CreateOrderResponse(BaseModel):
    order_id: str
    amount: int  # minor units
    currency: str
    key_id: Optional[str]
    payment_id: int


class VerifyPaymentRequest(BaseModel):
    order_id: Optional[str] = Field(None, validation_alias=AliasChoices("order_id", "razorpay_order_id"))
    payment_id: Optional[str] = Field(None, validation_alias=AliasChoices("payment_id", "razorpay_payment_id"))
    signature: Optional[str] = Field(None, validation_alias=AliasChoices("signature", "razorpay_signature"))


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    email: str
    plan_id: str
    amount: float
    currency: str
    provider_order_id: str
    provider_payment_id: Optional[str] = None
    provider_signature: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactCreate(BaseModel):
    name: constr(min_length=1, max_length=100, strip_whitespace=True)  # type: ignore
    email: EmailStr
    subject: constr(min_length=1, max_length=200, strip_whitespace=True)  # type: ignore
    message: constr(min_length=1, max_length=5000, strip_whitespace=True)  # type: ignore

    @field_validator("name", "subject")
    @classmethod
    def sanitize(cls, value):
        return _strip_tags(value)


class ContactStatusUpdate(BaseModel):
    status: str


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    subject: str
    message: str
    status: str
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    message: str
