from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from api.dependencies import get_contact_service, get_current_admin, get_optional_user
from api.models import ContactCreate, ContactResponse, ContactStatusUpdate, MessageResponse
from api.rate_limit import limiter
from api.services.contact_service import ContactService
from db.models.user import User

router = APIRouter(prefix="/contact", tags=["contact"])


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/hour")
def submit_contact(
    request: Request,
    body: ContactCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    contact_service: ContactService = Depends(get_contact_service),
):
    return contact_service.create_contact(
        body.name,
        body.email,
        body.subject,
        body.message,
        user_id=current_user.id if current_user else None,
    )


@router.get("/admin/all", response_model=list[ContactResponse])
def list_contacts(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[str] = None,
    admin: User = Depends(get_current_admin),
    contact_service: ContactService = Depends(get_contact_service),
):
    return contact_service.list_contacts(skip, limit, status)


@router.get("/admin/{contact_id}", response_model=ContactResponse)
def get_contact(
    contact_id: int,
    admin: User = Depends(get_current_admin),
    contact_service: ContactService = Depends(get_contact_service),
):
    return contact_service.get_contact(contact_id)


@router.patch("/admin/{contact_id}/status", response_model=ContactResponse)
def update_contact_status(
    contact_id: int,
    body: ContactStatusUpdate,
    admin: User = Depends(get_current_admin),
    contact_service: ContactService = Depends(get_contact_service),
):
    return contact_service.update_status(contact_id, body.status)


@router.delete("/admin/{contact_id}", response_model=MessageResponse)
def delete_contact(
    contact_id: int,
    admin: User = Depends(get_current_admin),
    contact_service: ContactService = Depends(get_contact_service),
):
    contact_service.delete_contact(contact_id)
    return MessageResponse(message="Contact deleted successfully")
