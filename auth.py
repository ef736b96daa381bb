import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
import jwt
from fastapi import Depends, Request, Response
from supabase import Client

from config import Settings, get_settings
from database import first_row, get_db
from responses import ApiError, unauthorized

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


class Role(str, enum.Enum):
    USER = "user"
    STAFF = "staff"
    ADMIN = "admin"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    full_name: Optional[str]
    email: Optional[str]
    phone_number: Optional[str]
    department_id: Optional[int]
    is_admin: bool

    @classmethod
    def from_row(cls, row: dict) -> "CurrentUser":
        return cls(
            id=row["id"],
            full_name=row.get("full_name"),
            email=row.get("email"),
            phone_number=row.get("phone_number"),
            department_id=row.get("department_id"),
            is_admin=bool(row.get("is_admin")),
        )

    def has_role(self, role: Role) -> bool:
        if role is Role.ADMIN:
            return self.is_admin
        if role is Role.STAFF:
            return self.department_id is not None
        return True


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    rounds = rounds or get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ─── TOKENS ───────────────────────────────────────────────
def create_tokens(user: dict, settings: Optional[Settings] = None) -> Tuple[str, str]:
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    access_token = jwt.encode(
        {
            "id": user["id"],
            "is_admin": bool(user.get("is_admin")),
            "iat": now,
            "exp": now + timedelta(days=settings.access_token_expire_days),
        },
        settings.access_token_secret,
        algorithm=JWT_ALGORITHM,
    )
    refresh_token = jwt.encode(
        {
            "id": user["id"],
            "type": "refresh",
            "iat": now,
            "exp": now + timedelta(days=settings.refresh_token_expire_days),
        },
        settings.refresh_token_secret,
        algorithm=JWT_ALGORITHM,
    )
    return access_token, refresh_token


def _decode(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise unauthorized("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise unauthorized("Invalid access token") from exc


def decode_access_token(token: str, settings: Optional[Settings] = None) -> dict:
    settings = settings or get_settings()
    return _decode(token, settings.access_token_secret)


def decode_refresh_token(token: str, settings: Optional[Settings] = None) -> dict:
    """Refresh tokens are stateless: nothing is stored, so nothing can be revoked early."""
    settings = settings or get_settings()
    claims = _decode(token, settings.refresh_token_secret)
    if claims.get("type") != "refresh":
        raise unauthorized("Invalid refresh token")
    return claims


def set_auth_cookies(response: Response, access_token: str, refresh_token: Optional[str] = None) -> None:
    settings = get_settings()
    options = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "none" if settings.cookie_secure else "lax",
    }
    response.set_cookie(ACCESS_COOKIE, access_token, **options)
    if refresh_token:
        response.set_cookie(REFRESH_COOKIE, refresh_token, **options)


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    options = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "none" if settings.cookie_secure else "lax",
    }
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)


# ─── GUARD ────────────────────────────────────────────────
def _extract_token(request: Request) -> Optional[str]:
    # an explicit header wins over the cookie
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(ACCESS_COOKIE) or None


def _resolve_user(db: Client, token: str) -> CurrentUser:
    claims = decode_access_token(token)
    row = first_row(db.table("users").select("*").eq("id", claims.get("id")).execute())
    if row is None:
        logger.warning("Token for unknown user %s", claims.get("id"))
        raise unauthorized("Invalid access token")
    return CurrentUser.from_row(row)


def get_current_user(request: Request, db: Client = Depends(get_db)) -> CurrentUser:
    token = _extract_token(request)
    if not token:
        raise unauthorized()
    return _resolve_user(db, token)


def get_optional_user(request: Request, db: Client = Depends(get_db)) -> Optional[CurrentUser]:
    token = _extract_token(request)
    if not token:
        return None
    try:
        return _resolve_user(db, token)
    except ApiError as exc:
        # a stale cookie must not block anonymous routes
        logger.info("Ignoring unusable token on optional auth: %s", exc.message)
        return None


def requires(role: Role):
    """Route dependency: authenticate, then check ``role`` once before the handler runs."""

    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_role(role):
            logger.info("User %s lacks role %s", user.id, role.value)
            raise unauthorized(f"{role.value.capitalize()} access required")
        return user

    return dependency
