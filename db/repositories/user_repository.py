from datetime import datetime
from sqlalchemy.orm import Session
from db.models.user import User
from db.models.subscription import Subscription
from db.models.payment import Payment
from db.models.refresh_token import RefreshToken
from db.models.contact import Contact


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user: User):
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_user(self, user_id: int, update_data: dict) -> User | None:
        """Update user with dict of fields; callers decide which fields are allowed"""
        existing_user = self.get_user_by_id(user_id)
        if not existing_user:
            return None
        for key, value in update_data.items():
            if hasattr(existing_user, key):
                setattr(existing_user, key, value)
        self.db.commit()
        self.db.refresh(existing_user)
        return existing_user

    def get_user_by_email(self, email: str):
        return self.db.query(User).filter(User.email == email).first()

    def get_user_by_id(self, user_id: int):
        return self.db.query(User).filter(User.id == user_id).first()

    def list_users(self, skip: int = 0, limit: int = None):
        """Get all users, optionally paginated"""
        query = self.db.query(User).order_by(User.id).offset(skip)
        if limit:
            query = query.limit(limit)
        return query.all()

    def delete_user(self, user_id: int) -> bool:
        """Delete a user with their subscriptions and refresh tokens.

        Payments are kept for audit: they carry an email snapshot and lose
        only the user reference.
        """
        user = self.get_user_by_id(user_id)
        if not user:
            return False
        self.db.query(Subscription).filter(Subscription.user_id == user_id).delete(
            synchronize_session=False
        )
        self.db.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete(
            synchronize_session=False
        )
        self.db.query(Payment).filter(Payment.user_id == user_id).update(
            {"user_id": None}, synchronize_session=False
        )
        self.db.query(Contact).filter(Contact.user_id == user_id).update(
            {"user_id": None}, synchronize_session=False
        )
        self.db.delete(user)
        self.db.commit()
        return True

    def backfill_is_admin(self) -> int:
        """Set is_admin=False on legacy rows that never had the flag"""
        count = (
            self.db.query(User)
            .filter(User.is_admin.is_(None))
            .update({"is_admin": False}, synchronize_session=False)
        )
        self.db.commit()
        return count

    def create_refresh_token(self, refresh_token: RefreshToken):
        self.db.add(refresh_token)
        self.db.commit()
        self.db.refresh(refresh_token)
        return refresh_token

    def get_refresh_token(self, token: str) -> RefreshToken | None:
        return self.db.query(RefreshToken).filter(RefreshToken.token == token).first()

    def delete_refresh_token(self, token: str) -> bool:
        count = self.db.query(RefreshToken).filter(RefreshToken.token == token).delete(
            synchronize_session=False
        )
        self.db.commit()
        return count > 0

    def delete_refresh_tokens_for_user(self, user_id: int) -> int:
        count = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count

    def count_refresh_tokens(self, user_id: int) -> int:
        return self.db.query(RefreshToken).filter(RefreshToken.user_id == user_id).count()

    def update_last_login(self, user: User, last_login: datetime) -> User:
        user.last_login = last_login
        self.db.commit()
        self.db.refresh(user)
        return user
