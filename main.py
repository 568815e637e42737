from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.concurrency import asynccontextmanager
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from api import router as api_router
from api.errors import ServiceException
from api.health import router as health_router
from api.rate_limit import limiter
from api.services.subscription_service import SubscriptionService
from api.services.user_service import UserService
from db.engine import SessionLocal
from db.models.settings import Settings
from db.repositories.settings_repository import SettingsRepository
from db.repositories.subscription_repository import SubscriptionRepository
from db.repositories.user_repository import UserRepository
import logging
import os
import secrets
import traceback


# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    filename=os.getenv("LOG_FILE", "log.txt"),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

INSECURE_SECRETS = [
    "change-me-in-production",
    "change-me-to-random-string",
    "your-secret-key-here",
]

EXPIRY_JOB_ID = "expire_subscriptions_job"


def is_production() -> bool:
    return os.getenv("APP_ENV", "development") == "production"


def ensure_jwt_secret(session_factory=SessionLocal):
    """Ensure JWT_SECRET exists and is secure"""
    jwt_secret = os.getenv("JWT_SECRET")
    if jwt_secret and jwt_secret not in INSECURE_SECRETS:
        return jwt_secret

    db = session_factory()
    try:
        # A secret generated on an earlier run keeps issued tokens valid across restarts
        stored = db.query(Settings).filter(Settings.key == "JWT_SECRET").first()
        if stored and stored.value and stored.value not in INSECURE_SECRETS:
            logger.info("Loaded JWT_SECRET from database")
            os.environ["JWT_SECRET"] = stored.value
            return stored.value

        new_secret = secrets.token_hex(32)
        logger.warning(
            "JWT_SECRET not set or insecure! Generated secure random secret. "
            "Please set JWT_SECRET in your environment for production."
        )
        try:
            SettingsRepository(db).set_setting("JWT_SECRET", new_secret, is_secret=True)
            logger.info("Generated JWT_SECRET saved to database")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save JWT_SECRET to database: {e}")
    finally:
        db.close()

    os.environ["JWT_SECRET"] = new_secret
    return new_secret


def initialize_admin_user(session_factory=SessionLocal):
    """Create admin user from environment variables if no users exist"""
    db = session_factory()
    try:
        user_repo = UserRepository(db)
        user_service = UserService(user_repo)
        user_service.ensure_is_admin_field()

        existing_users = user_repo.list_users(limit=1)
        if existing_users:
            logger.info("Users already exist, skipping admin creation")
            return None

        admin_email = os.getenv("ADMIN_EMAIL")
        admin_password = os.getenv("ADMIN_PASSWORD")
        if not admin_email or not admin_password:
            logger.info("No admin credentials in environment. First-run setup will be required.")
            return None

        logger.info(f"Creating admin user from environment variables: {admin_email}")
        user = user_service.register(
            os.getenv("ADMIN_NAME", "Admin"),
            admin_email,
            None,
            admin_password,
            is_admin=True,
        )
        logger.info(f"Admin user created successfully: {admin_email}")
        return user
    finally:
        db.close()


def expire_subscriptions(session_factory=SessionLocal) -> int:
    """One sweep of the expiry job, in its own session"""
    db = session_factory()
    try:
        return SubscriptionService(SubscriptionRepository(db)).expire_past_due_subscriptions()
    finally:
        db.close()


def init_scheduler(session_factory=SessionLocal, interval_seconds=None):
    if interval_seconds is None:
        interval_seconds = int(os.getenv("EXPIRY_SWEEP_SECONDS", "3600"))
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        expire_subscriptions,
        "interval",
        seconds=interval_seconds,
        id=EXPIRY_JOB_ID,
        kwargs={"session_factory": session_factory},
    )

    def job_error_listener(event):
        logger.error(f"Job {event.job_id} crashed: {event.exception}")

    scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
    return scheduler


def start_scheduler(app: FastAPI):
    logger.info("Starting scheduler...")
    scheduler = init_scheduler()
    scheduler.start()
    app.state.scheduler = scheduler
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_jwt_secret()
    initialize_admin_user()
    scheduler = None
    if os.getenv("SKIP_SCHEDULER", "false").lower() != "true":
        scheduler = start_scheduler(app)
    else:
        logger.info("SKIP_SCHEDULER set, expiry sweep disabled")
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


app = FastAPI(title="Subscription Service", lifespan=lifespan)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS Configuration
allowed_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]
if allowed_origins == ["*"]:
    logger.warning(
        "CORS is set to allow all origins (*). "
        "Set CORS_ORIGINS environment variable to restrict origins in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    max_age=600,
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


app.include_router(health_router)
app.include_router(api_router, prefix="/api")


@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    content = {"detail": exc.detail}
    if not is_production():
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"detail": "Internal server error"}
    if not is_production():
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)
