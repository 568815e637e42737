from datetime import datetime
from sqlalchemy.orm import Session
from db.models.payment import Payment, PAYMENT_PENDING


class PaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def get_by_id(self, payment_id: int) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_by_order_id(self, order_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.provider_order_id == order_id).first()

    def get_by_provider_payment_id(self, provider_payment_id: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.provider_payment_id == provider_payment_id)
            .first()
        )

    def list_all(self, skip: int = 0, limit: int = 100) -> list[Payment]:
        return (
            self.db.query(Payment)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def list_by_user(self, user_id: int) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    def transition_from_pending(
        self, order_id: str, status: str, now: datetime, **fields
    ) -> bool:
        """Stage pending -> status for one order; the caller commits.

        Returns False when the payment is missing or already settled, which is
        what makes duplicate capture notifications a no-op.
        """
        values = {"status": status, "updated_at": now}
        values.update(fields)
        count = (
            self.db.query(Payment)
            .filter(
                Payment.provider_order_id == order_id,
                Payment.status == PAYMENT_PENDING,
            )
            .update(values, synchronize_session="fetch")
        )
        self.db.flush()
        return count == 1

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
