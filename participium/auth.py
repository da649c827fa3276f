from typing import Optional
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlmodel import select
import logging

from .config import get_settings
from .database import get_session
from .errors import BadRequest, Unauthorized
from .models import User
from .permissions import Permission, UserRole, parse_role, require_permission

logger = logging.getLogger("participium.auth")

_settings = get_settings()
SECRET_KEY = _settings.jwt_secret
if not SECRET_KEY:
    # Fail securely rather than signing tokens with a default key.
    raise ValueError("JWT_SECRET not found in environment or .env file.")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _settings.jwt_access_minutes

# pbkdf2_sha256 avoids depending on a bcrypt C-extension.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# auto_error=False so missing credentials produce our own {"error": ...} 401.
security = HTTPBearer(auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: str
    role: Optional[str] = None
    exp: Optional[int] = None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject, role: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = {"sub": str(subject)}
    if role:
        to_encode["role"] = role
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> TokenPayload:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(**payload)
    except JWTError as exc:
        raise Unauthorized("Invalid authentication credentials") from exc


async def authenticate_user(username: str, password: str, session) -> Optional[User]:
    # Username first, then email
    result = await session.exec(select(User).where(User.username == username))
    user = result.first()
    if not user:
        result = await session.exec(select(User).where(User.email == username))
        user = result.first()
    if not user or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", username)
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session=Depends(get_session),
) -> User:
    if not credentials or not getattr(credentials, "credentials", None):
        raise Unauthorized("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    try:
        user_id = int(payload.sub)
    except ValueError:
        raise Unauthorized("Invalid authentication credentials") from None

    user = await session.get(User, user_id)
    if not user:
        logger.info("Token subject %r does not match any user", payload.sub)
        raise Unauthorized("Invalid authentication credentials")
    return user


def require(permission: Permission, message: Optional[str] = None):
    """Dependency factory: the current user must hold `permission`."""
    async def permission_checker(user: User = Depends(get_current_user)) -> User:
        require_permission(user, permission, message)
        return user
    return permission_checker


async def create_user(
    session,
    username: str,
    password: str,
    role=UserRole.CITIZEN,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    department_role_id: Optional[int] = None,
) -> User:
    """Create a user with a hashed password and return it."""
    try:
        role = parse_role(role)
    except ValueError:
        raise BadRequest(f"Invalid role '{role}'") from None
    if role == UserRole.TECHNICAL_STAFF and department_role_id is None:
        raise BadRequest("Technical staff members need a department role")
    if role != UserRole.TECHNICAL_STAFF and department_role_id is not None:
        raise BadRequest("Only technical staff members belong to a department role")

    result = await session.exec(select(User).where(User.username == username))
    if result.first():
        raise BadRequest("Username already taken")

    user = User(
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=get_password_hash(password),
        role=role.value,
        department_role_id=department_role_id,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Created user %s (role=%s)", user.id, user.role)
    return user
