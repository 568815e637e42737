from datetime import datetime
from sqlalchemy.orm import Session
from db.models.contact import Contact


class ContactRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, contact: Contact) -> Contact:
        self.db.add(contact)
        self.db.commit()
        self.db.refresh(contact)
        return contact

    def get_by_id(self, contact_id: int) -> Contact | None:
        return self.db.query(Contact).filter(Contact.id == contact_id).first()

    def list_all(self, skip: int = 0, limit: int = 100, status: str | None = None) -> list[Contact]:
        query = self.db.query(Contact)
        if status:
            query = query.filter(Contact.status == status)
        return (
            query.order_by(Contact.created_at.desc(), Contact.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def update_status(self, contact_id: int, status: str, now: datetime) -> Contact | None:
        contact = self.get_by_id(contact_id)
        if not contact:
            return None
        contact.status = status
        contact.updated_at = now
        self.db.commit()
        self.db.refresh(contact)
        return contact

    def delete(self, contact_id: int) -> bool:
        contact = self.get_by_id(contact_id)
        if not contact:
            return False
        self.db.delete(contact)
        self.db.commit()
        return True
