from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
import logging
import os

from . import auth, otp_utils
from .config import get_settings
from .database import get_session, init_db
from .errors import InsufficientRights, NotFound, Unauthorized, register_exception_handlers
from .models import User
from .observability import (
    setup_logging,
    init_sentry,
    setup_metrics_middleware,
    metrics_endpoint,
    get_health_check,
)
from .permissions import Permission, UserRole
from .routes import notifications as notification_routes
from .routes import reports as report_routes
from .routes import telegram as telegram_routes
from .schemas import (
    MunicipalUserCreate,
    RegisterRequest,
    ResendCodeRequest,
    UserPublic,
    VerifyEmailRequest,
    user_to_public,
)
from .storage import LocalPhotoStorage, STORAGE_URL_PREFIX
from .users import find_department_role, get_user_by_username

# Setup observability
setup_logging()
init_sentry()

logger = logging.getLogger("participium")

settings = get_settings()

app = FastAPI(title="Participium API")

setup_metrics_middleware(app)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(report_routes.router)
app.include_router(telegram_routes.router)
app.include_router(notification_routes.router)

# Stored report photos are referenced by URL from the report DTOs.
app.mount(
    STORAGE_URL_PREFIX,
    StaticFiles(directory=str(LocalPhotoStorage().ensure_root())),
    name="storage",
)


async def _user_awaiting_code(session, username: str) -> User:
    user = await get_user_by_username(session, username)
    if user is None:
        raise NotFound("User not found")
    return user


@app.post("/auth/login", response_model=auth.Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), session=Depends(get_session)):
    user = await auth.authenticate_user(form_data.username, form_data.password, session)
    if not user:
        raise Unauthorized("Invalid username or password")
    if user.role == UserRole.CITIZEN.value and user.email and not user.email_verified:
        raise InsufficientRights("Email not verified. Enter the code we sent you.")
    token = auth.create_access_token(subject=user.id, role=user.role)
    return {"access_token": token, "token_type": "bearer"}


@app.post("/auth/register", status_code=201, response_model=UserPublic)
async def register(payload: RegisterRequest, session=Depends(get_session)):
    """Citizen self-registration."""
    user = await auth.create_user(
        session,
        username=payload.username,
        password=payload.password,
        role=UserRole.CITIZEN,
        email=payload.email,
        first_name=payload.firstName,
        last_name=payload.lastName,
    )
    if user.email and not await otp_utils.send_verification_code(session, user):
        logger.warning("Verification email for user %s was not delivered", user.id)
    return user_to_public(user)


@app.post("/auth/verify-email", response_model=UserPublic)
async def verify_email(payload: VerifyEmailRequest, session=Depends(get_session)):
    user = await _user_awaiting_code(session, payload.username)
    user = await otp_utils.verify_email_code(session, user, payload.code)
    return user_to_public(user)


@app.post("/auth/resend-code", status_code=202)
async def resend_code(payload: ResendCodeRequest, session=Depends(get_session)):
    user = await _user_awaiting_code(session, payload.username)
    sent = await otp_utils.send_verification_code(session, user)
    return {"sent": sent}


@app.get("/auth/me", response_model=UserPublic)
async def me(user: User = Depends(auth.get_current_user)):
    return user_to_public(user)


@app.post("/admin/users", status_code=201, response_model=UserPublic)
async def create_municipal_user(
    payload: MunicipalUserCreate,
    _: User = Depends(auth.require(Permission.MANAGE_USERS, "Only administrators can create municipal users")),
    session=Depends(get_session),
):
    department_role_id = None
    if payload.department or payload.departmentRole:
        dept_role = await find_department_role(session, payload.department or "", payload.departmentRole or "")
        department_role_id = dept_role.id
    user = await auth.create_user(
        session,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        email=payload.email,
        first_name=payload.firstName,
        last_name=payload.lastName,
        department_role_id=department_role_id,
    )
    return user_to_public(user)


@app.on_event("startup")
async def on_startup():
    await init_db()


@app.get("/health")
def health():
    """Health check endpoint."""
    return get_health_check()


@app.get("/metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return metrics_endpoint()
