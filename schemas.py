from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CamelModel(BaseModel):
    # request bodies arrive in camelCase from the SPA
    model_config = ConfigDict(populate_by_name=True)


# ─── USERS ────────────────────────────────────────────────
class UserCreate(CamelModel):
    full_name: str = Field(alias="fullName")
    email: EmailStr
    username: str
    password: str
    department: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    is_admin: bool = Field(default=False, alias="isAdmin")


class UserUpdate(CamelModel):
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    department: Optional[str] = None
    is_admin: Optional[bool] = Field(default=None, alias="isAdmin")


class UserLogin(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class PasswordChange(CamelModel):
    old_password: str = Field(alias="oldPassword")
    new_password: str = Field(alias="newPassword")


class AccountUpdate(CamelModel):
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[EmailStr] = None


class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = Field(default=None, serialization_alias="fullName")
    phone_number: Optional[str] = Field(default=None, serialization_alias="phoneNumber")
    department: Optional[int] = None
    is_admin: bool = False


# ─── DEPARTMENTS ──────────────────────────────────────────
class DepartmentCreate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None


class DepartmentTypeUpdate(BaseModel):
    type: Optional[str] = None


# ─── ISSUES ───────────────────────────────────────────────
class IssueCreate(CamelModel):
    issue: str = ""
    description: Optional[str] = None
    address: str = ""
    require_department: str = Field(default="", alias="requireDepartment")


class IssueAction(CamelModel):
    issue_id: int = Field(alias="issueId")


class IssueCreated(BaseModel):
    issue: dict
    warning: Optional[str] = None


# ─── REPORTS ──────────────────────────────────────────────
class ReportFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reported_department: Optional[str] = None
    required_department: Optional[str] = None


class ReportRow(BaseModel):
    id: int
    issue: str
    description: Optional[str] = None
    address: Optional[str] = None
    require_department_id: Optional[int] = None
    required_department_name: str
    complete: bool = False
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_department_name: Optional[str] = None
    acknowledge_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ─── LICENSES ─────────────────────────────────────────────
class LicenseOut(BaseModel):
    id: int
    file_name: str
    file_path: str
    file_url: Optional[str] = None
    expiry_date: date
    department_id: int
    department_name: Optional[str] = None
    created_at: Optional[str] = None
