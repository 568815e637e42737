from fastapi import APIRouter
from .auth import router as auth_router
from .profile import router as profile_router
from .subscriptions import router as subscriptions_router
from .payments import router as payments_router
from .download import router as download_router
from .contact import router as contact_router
from .admin import router as admin_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(profile_router)
router.include_router(subscriptions_router)
router.include_router(payments_router)
router.include_router(download_router)
router.include_router(contact_router)
router.include_router(admin_router)
