from passlib.context import CryptContext
from db.models.user import User
from db.models.refresh_token import RefreshToken
from db.repositories.user_repository import UserRepository
from api.errors import InvalidInput, NotAuthenticated, NotFound
from api.utils import utcnow
import jwt
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
from fastapi import Request

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

# Fields each caller may change; anything else in an update body is ignored
PROFILE_FIELDS = ("name", "contact_number")
ADMIN_USER_FIELDS = ("name", "email", "contact_number", "is_admin")


class UserService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo
        self.pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
        self.SECRET_KEY = os.getenv("JWT_SECRET", "")
        if not self.SECRET_KEY:
            logger.warning("JWT_SECRET not found in environment")
        self.ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    def get_by_id(self, user_id: int) -> User:
        user = self.user_repo.get_user_by_id(user_id)
        if not user:
            logger.error(f"User with ID {user_id} not found")
            raise NotFound("User not found")
        return user

    def list_users(self, skip: int = 0, limit: int = 100) -> list[User]:
        return self.user_repo.list_users(skip=skip, limit=limit)

    def register(
        self,
        name: str,
        email: str,
        contact_number: Optional[str],
        password: str,
        is_admin: bool = False,
    ) -> User:
        if not name or not email or not password:
            raise InvalidInput("All fields are required")
        existing_user = self.user_repo.get_user_by_email(email)
        if existing_user:
            logger.error(f"Email already registered: {email}")
            raise InvalidInput("Email already registered")
        now = utcnow()
        user = User(
            name=name,
            email=email,
            contact_number=contact_number,
            password_hash=self.pwd_context.hash(password),
            is_admin=is_admin,
            created_at=now,
            updated_at=now,
        )
        self.user_repo.create_user(user)
        logger.info(f"Created user with email {email} (ID: {user.id}, admin={is_admin})")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.user_repo.get_user_by_email(email)
        if not user or not self.pwd_context.verify(password, user.password_hash):
            logger.error(f"Login failed for email {email}: Invalid credentials")
            raise NotAuthenticated("Incorrect email or password")
        return self.user_repo.update_last_login(user, utcnow())

    def login(self, email: str, password: str) -> dict:
        user = self.authenticate(email, password)
        access_token = self.create_access_token(str(user.id))
        refresh_token = self.create_refresh_token(user.id)
        logger.info(f"Login successful: {'ADMIN' if user.is_admin else 'User'} {email} (ID: {user.id})")
        return {
            "user": user,
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
        }

    def _encode(self, subject: str, token_type: str, expires_delta: timedelta) -> str:
        expire = datetime.now(timezone.utc) + expires_delta
        # jti keeps two tokens minted in the same second distinct
        to_encode = {"sub": subject, "exp": expire, "type": token_type, "jti": uuid.uuid4().hex}
        return jwt.encode(to_encode, self.SECRET_KEY, algorithm=self.ALGORITHM)

    def create_access_token(self, subject: str, expires_delta: Optional[timedelta] = None) -> str:
        return self._encode(
            subject,
            TOKEN_TYPE_ACCESS,
            expires_delta or timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def create_refresh_token(self, user_id: int) -> str:
        expires_delta = timedelta(days=self.REFRESH_TOKEN_EXPIRE_DAYS)
        token = self._encode(str(user_id), TOKEN_TYPE_REFRESH, expires_delta)
        self.user_repo.create_refresh_token(
            RefreshToken(
                user_id=user_id,
                token=token,
                expires_at=utcnow() + expires_delta,
                created_at=utcnow(),
            )
        )
        return token

    def decode_token(self, token: str, token_type: str) -> dict:
        try:
            payload = jwt.decode(token, self.SECRET_KEY, algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.error("Token has expired")
            raise NotAuthenticated("Token expired")
        except jwt.PyJWTError as e:
            logger.error(f"JWT decode error: {str(e)}")
            raise NotAuthenticated("Invalid authentication credentials")
        if payload.get("type") != token_type:
            logger.error(f"Expected {token_type} token, got {payload.get('type')}")
            raise NotAuthenticated("Invalid authentication credentials")
        if not payload.get("sub"):
            logger.error("No subject in token payload")
            raise NotAuthenticated("Invalid token payload")
        return payload

    def get_current_user(self, token: str) -> User:
        payload = self.decode_token(token, TOKEN_TYPE_ACCESS)
        try:
            user_id = int(payload["sub"])
        except ValueError:
            logger.error(f"Invalid user_id format in token: {payload['sub']}")
            raise NotAuthenticated("Invalid token payload")
        user = self.user_repo.get_user_by_id(user_id)
        if user is None:
            logger.error(f"No user found for ID {user_id} in database")
            raise NotAuthenticated("User not found")
        return user

    def get_current_user_from_request(self, request: Request) -> User:
        auth = request.headers.get("Authorization")
        if not auth or not auth.lower().startswith("bearer "):
            raise NotAuthenticated("Invalid authentication credentials")
        token = auth.split(" ", 1)[1].strip()
        return self.get_current_user(token)

    def refresh_access_token(self, refresh_token: str) -> dict:
        payload = self.decode_token(refresh_token, TOKEN_TYPE_REFRESH)
        record = self.user_repo.get_refresh_token(refresh_token)
        if not record:
            logger.warning("Refresh token not found (logged out or reset)")
            raise NotAuthenticated("Invalid or expired refresh token")
        if utcnow() > record.expires_at:
            user_id = record.user_id
            self.user_repo.delete_refresh_token(refresh_token)
            logger.warning(f"Refresh token for user {user_id} expired, removed")
            raise NotAuthenticated("Invalid or expired refresh token")
        return {
            "access_token": self.create_access_token(payload["sub"]),
            "token_type": "bearer",
        }

    def logout(self, refresh_token: Optional[str]) -> bool:
        if not refresh_token:
            return False
        return self.user_repo.delete_refresh_token(refresh_token)

    def update_profile(self, user_id: int, update_data: dict) -> User:
        return self._update(user_id, update_data, PROFILE_FIELDS)

    def admin_update_user(self, user_id: int, update_data: dict) -> User:
        email = update_data.get("email")
        if email:
            existing_user = self.user_repo.get_user_by_email(email)
            if existing_user and existing_user.id != user_id:
                raise InvalidInput("Email already registered")
        return self._update(user_id, update_data, ADMIN_USER_FIELDS)

    def _update(self, user_id: int, update_data: dict, allowed: tuple) -> User:
        changes = {k: v for k, v in update_data.items() if k in allowed and v is not None}
        if not changes:
            raise InvalidInput("No valid fields to update")
        changes["updated_at"] = utcnow()
        user = self.user_repo.update_user(user_id, changes)
        if not user:
            raise NotFound("User not found")
        logger.info(f"Updated user {user_id}: {sorted(k for k in changes if k != 'updated_at')}")
        return user

    def reset_password(self, user_id: int, new_password: str) -> User:
        """Set a new password and log the user out everywhere"""
        if not new_password:
            raise InvalidInput("New password is required")
        user = self.user_repo.update_user(
            user_id,
            {"password_hash": self.pwd_context.hash(new_password), "updated_at": utcnow()},
        )
        if not user:
            raise NotFound("User not found")
        count = self.user_repo.delete_refresh_tokens_for_user(user_id)
        logger.info(f"Password reset for user {user_id}, revoked {count} refresh token(s)")
        return user

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise InvalidInput("Cannot delete yourself")
        if not self.user_repo.delete_user(user_id):
            raise NotFound("User not found")
        logger.info(f"Deleted user {user_id}; payments kept with email snapshot")

    def ensure_is_admin_field(self) -> int:
        count = self.user_repo.backfill_is_admin()
        if count:
            logger.info(f"Updated {count} users to set is_admin=False")
        return count
