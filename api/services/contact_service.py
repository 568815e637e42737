from typing import Optional
import logging

from api.errors import InvalidInput, NotFound
from api.utils import utcnow
from db.models.contact import Contact, CONTACT_STATUSES
from db.repositories.contact_repository import ContactRepository

logger = logging.getLogger(__name__)


class ContactService:
    def __init__(self, contact_repo: ContactRepository):
        self.contact_repo = contact_repo

    def create_contact(
        self, name: str, email: str, subject: str, message: str, user_id: Optional[int] = None
    ) -> Contact:
        now = utcnow()
        contact = self.contact_repo.create(
            Contact(
                name=name,
                email=email,
                subject=subject,
                message=message,
                status="new",
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"Contact submission {contact.id} created from {email}")
        return contact

    def get_contact(self, contact_id: int) -> Contact:
        contact = self.contact_repo.get_by_id(contact_id)
        if not contact:
            raise NotFound("Contact not found")
        return contact

    def list_contacts(self, skip: int = 0, limit: int = 100, status: Optional[str] = None) -> list[Contact]:
        return self.contact_repo.list_all(skip, limit, status)

    def update_status(self, contact_id: int, status: str) -> Contact:
        if status not in CONTACT_STATUSES:
            raise InvalidInput("Invalid status value")
        contact = self.contact_repo.update_status(contact_id, status, utcnow())
        if not contact:
            raise NotFound("Contact not found")
        logger.info(f"Contact {contact_id} status set to {status}")
        return contact

    def delete_contact(self, contact_id: int) -> None:
        if not self.contact_repo.delete(contact_id):
            raise NotFound("Contact not found")
        logger.info(f"Contact {contact_id} deleted")
