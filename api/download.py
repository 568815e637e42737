from pathlib import Path
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from api.dependencies import get_current_user, get_settings_repository, get_subscription_service
from api.errors import ServiceException, SubscriptionInactive, SubscriptionRequired
from api.services.subscription_service import SubscriptionService
from db.models.user import User
from db.repositories.settings_repository import SettingsRepository

router = APIRouter(prefix="/download", tags=["download"])
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def resolve_file_path(configured: str) -> Path:
    """Absolute paths as-is, relative ones against the working directory, then the project root"""
    path = Path(configured)
    if path.is_absolute():
        return path
    for candidate in (Path.cwd() / path, PROJECT_ROOT / path):
        if candidate.exists():
            return candidate.resolve()
    return (Path.cwd() / path).resolve()


@router.get("/file")
def download_file(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    settings_repo: SettingsRepository = Depends(get_settings_repository),
):
    logger.info(f"Download request from user: {current_user.email} (ID: {current_user.id})")
    subscription = subscription_service.get_current_subscription(current_user.id)
    if subscription is None:
        logger.warning(f"Download denied - No subscription for user: {current_user.email}")
        raise SubscriptionRequired("No subscription found. Please purchase a subscription to download.")
    if not subscription_service.is_active(subscription):
        logger.warning(
            f"Download denied - {subscription.status} subscription past "
            f"{subscription.end_date.isoformat()} for user: {current_user.email}"
        )
        raise SubscriptionInactive("Your subscription has expired. Please renew to download.")

    file_path = resolve_file_path(settings_repo.get_setting("DOWNLOAD_FILE_PATH", "./.downloads/app.zip"))
    if not file_path.is_file():
        logger.error(f"Download file not found at: {file_path}")
        raise ServiceException("Download file not available")

    logger.info(f"File download started for user: {current_user.email} (Path: {file_path})")
    return FileResponse(
        file_path,
        media_type="application/zip",
        filename=settings_repo.get_setting("DOWNLOAD_FILE_NAME", "app.zip"),
    )
