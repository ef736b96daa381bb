import logging
import re
from typing import List, Optional

from supabase import Client

from auth import CurrentUser, create_tokens, decode_refresh_token, hash_password, verify_password
from config import Settings
from database import first_row
from departments import get_department_by_name
from responses import bad_request, conflict, not_found, unauthorized
from schemas import AccountUpdate, PasswordChange, UserCreate, UserOut, UserUpdate

logger = logging.getLogger(__name__)

PHONE_DIGITS = re.compile(r"^\d{10,15}$")


def get_user(db: Client, user_id: str) -> Optional[dict]:
    return first_row(db.table("users").select("*").eq("id", user_id).execute())


def to_user_out(row: dict) -> UserOut:
    return UserOut(
        id=row["id"],
        email=row.get("email"),
        full_name=row.get("full_name"),
        phone_number=row.get("phone_number"),
        department=row.get("department_id"),
        is_admin=bool(row.get("is_admin")),
    )


def _check_unique(db: Client, username: str, email: str) -> None:
    if get_user(db, username):
        raise conflict("Username already exists")
    if db.table("users").select("id").eq("email", email).execute().data:
        raise conflict("Email already exists")


def _check_email_free(db: Client, email: str, user_id: str) -> None:
    clash = db.table("users").select("id").eq("email", email).execute().data
    if any(r["id"] != user_id for r in clash):
        raise conflict("Email already exists")


def _resolve_department(db: Client, department: Optional[str], is_admin: bool) -> Optional[int]:
    if not department:
        if not is_admin:
            raise bad_request("Department is required for non-admin users")
        return None
    row = get_department_by_name(db, department)
    if row is None:
        raise not_found("Department not found")
    return row["department_id"]


# ─── REGISTER / CREATE ────────────────────────────────────
def create_user(db: Client, payload: UserCreate) -> dict:
    fields = [payload.full_name, payload.email, payload.username, payload.password]
    if any(not f or not str(f).strip() for f in fields):
        raise bad_request("All required fields must be provided")
    if payload.phone_number and not PHONE_DIGITS.match(re.sub(r"\D", "", payload.phone_number)):
        raise bad_request("Please provide a valid phone number")

    username = payload.username.strip().lower()
    _check_unique(db, username, payload.email)
    department_id = _resolve_department(db, payload.department, payload.is_admin)

    row = db.table("users").insert({
        "id":            username,
        "full_name":     payload.full_name.strip(),
        "email":         payload.email,
        "password":      hash_password(payload.password),
        "department_id": department_id,
        "phone_number":  payload.phone_number,
        "is_admin":      payload.is_admin,
    }).execute().data[0]
    logger.info("%s %s created", "Admin" if payload.is_admin else "User", username)
    return row


def register_user(db: Client, payload: UserCreate, caller: Optional[CurrentUser]) -> dict:
    if payload.is_admin and not (caller and caller.is_admin):
        raise unauthorized("Only admins can register admin users")
    return create_user(db, payload)


# ─── LOGIN / TOKENS ───────────────────────────────────────
def login_user(db: Client, username: Optional[str], password: Optional[str]) -> dict:
    if not username or not password:
        raise bad_request("Username and password are required")

    row = get_user(db, username.strip().lower())
    if row is None or not verify_password(password, row["password"]):
        logger.warning("Failed login for %s", username)
        raise unauthorized("Invalid user credentials")

    access_token, refresh_token = create_tokens(row)
    return {
        "user": to_user_out(row),
        "accessToken": access_token,
        "refreshToken": refresh_token,
    }


def refresh_access_token(db: Client, token: Optional[str]) -> dict:
    if not token:
        raise unauthorized("Unauthorized request")
    claims = decode_refresh_token(token)
    row = get_user(db, claims.get("id"))
    if row is None:
        raise unauthorized("Invalid refresh token")
    access_token, refresh_token = create_tokens(row)
    return {"accessToken": access_token, "refreshToken": refresh_token}


# ─── SELF SERVICE ─────────────────────────────────────────
def change_password(db: Client, user: CurrentUser, payload: PasswordChange) -> None:
    row = get_user(db, user.id)
    if row is None or not verify_password(payload.old_password, row["password"]):
        raise bad_request("Invalid old password")
    if not payload.new_password.strip():
        raise bad_request("New password is required")
    db.table("users").update({"password": hash_password(payload.new_password)}).eq("id", user.id).execute()
    logger.info("Password changed for %s", user.id)


def update_account(db: Client, user: CurrentUser, payload: AccountUpdate) -> UserOut:
    if not payload.full_name or not payload.email:
        raise bad_request("All fields are required")
    _check_email_free(db, payload.email, user.id)
    updated = db.table("users").update({
        "full_name": payload.full_name.strip(),
        "email":     payload.email,
    }).eq("id", user.id).execute().data[0]
    return to_user_out(updated)


# ─── ADMIN ────────────────────────────────────────────────
def list_users(db: Client) -> List[dict]:
    departments = {
        d["department_id"]: d["name"]
        for d in db.table("departments").select("department_id, name").execute().data
    }
    rows = db.table("users").select(
        "id, full_name, email, phone_number, is_admin, created_at, department_id"
    ).order("created_at", desc=True).execute().data
    return [
        {
            "id":              r["id"],
            "full_name":       r.get("full_name"),
            "email":           r.get("email"),
            "phone_number":    r.get("phone_number"),
            "is_admin":        bool(r.get("is_admin")),
            "created_at":      r.get("created_at"),
            "department_name": departments.get(r.get("department_id")),
        }
        for r in rows
    ]


def update_user(db: Client, user_id: str, payload: UserUpdate) -> dict:
    existing = get_user(db, user_id)
    if existing is None:
        raise not_found("User not found")

    currently_admin = bool(existing.get("is_admin"))
    to_admin = payload.is_admin is True and not currently_admin
    from_admin = payload.is_admin is False and currently_admin

    changes = {}
    if payload.full_name:
        changes["full_name"] = payload.full_name.strip()
    if payload.email:
        _check_email_free(db, payload.email, user_id)
        changes["email"] = payload.email
    if payload.phone_number:
        changes["phone_number"] = payload.phone_number

    if payload.department:
        department = get_department_by_name(db, payload.department)
        if department is None:
            raise not_found("Department not found")
        changes["department_id"] = department["department_id"]
    elif to_admin:
        changes["department_id"] = None
    elif from_admin:
        raise bad_request("Department is required when changing from admin to regular user")

    if payload.is_admin is not None:
        changes["is_admin"] = payload.is_admin

    if not changes:
        raise bad_request("No fields provided for update")

    db.table("users").update(changes).eq("id", user_id).execute()
    logger.info("User %s updated: %s", user_id, sorted(changes))
    return {"userId": user_id}


def delete_user(db: Client, user_id: str) -> dict:
    if get_user(db, user_id) is None:
        raise not_found("User not found")
    db.table("users").delete().eq("id", user_id).execute()
    logger.info("User %s deleted", user_id)
    return {"userId": user_id}


def bootstrap_admin(db: Client, settings: Settings) -> None:
    if not settings.admin_username or not settings.admin_password:
        return
    username = settings.admin_username.strip().lower()
    if get_user(db, username):
        return
    db.table("users").insert({
        "id":        username,
        "full_name": "Administrator",
        "email":     settings.admin_email,
        "password":  hash_password(settings.admin_password, settings.bcrypt_rounds),
        "is_admin":  True,
    }).execute()
    logger.info("Default admin user %s created", username)
