import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from supabase import Client

import departments
import issues
import licenses
import reports
import users
from auth import (
    REFRESH_COOKIE,
    CurrentUser,
    Role,
    clear_auth_cookies,
    get_current_user,
    get_optional_user,
    requires,
    set_auth_cookies,
)
from config import get_settings
from database import create_db_client, get_db
from responses import api_response, register_exception_handlers
from schemas import (
    AccountUpdate,
    DepartmentCreate,
    DepartmentTypeUpdate,
    IssueAction,
    IssueCreate,
    PasswordChange,
    RefreshRequest,
    ReportFilters,
    UserCreate,
    UserLogin,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

ADMIN_ONLY = [Depends(requires(Role.ADMIN))]


# ─── AUTH ─────────────────────────────────────────────────
@router.post("/users/register")
def register(
    payload: UserCreate,
    db: Client = Depends(get_db),
    caller: Optional[CurrentUser] = Depends(get_optional_user),
):
    row = users.register_user(db, payload, caller)
    message = "Admin registered successfully" if row.get("is_admin") else "User registered successfully"
    return api_response(200, users.to_user_out(row), message)


@router.post("/login")
def login(payload: UserLogin, db: Client = Depends(get_db)):
    result = users.login_user(db, payload.username, payload.password)
    message = "Admin logged in successfully" if result["user"].is_admin else "User logged in successfully"
    response = api_response(200, result, message)
    set_auth_cookies(response, result["accessToken"])
    return response


@router.post("/logout")
def logout(user: CurrentUser = Depends(get_current_user)):
    logger.info("User %s logged out", user.id)
    response = api_response(200, {}, "User logged out successfully")
    clear_auth_cookies(response)
    return response


@router.post("/refresh-token")
def refresh_token(
    request: Request,
    payload: Optional[RefreshRequest] = Body(default=None),
    db: Client = Depends(get_db),
):
    incoming = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    tokens = users.refresh_access_token(db, incoming)
    response = api_response(200, tokens, "Access token refreshed successfully")
    set_auth_cookies(response, tokens["accessToken"], tokens["refreshToken"])
    return response


@router.post("/change-password")
def change_password(
    payload: PasswordChange,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    users.change_password(db, user, payload)
    return api_response(200, {}, "Password changed successfully")


@router.get("/current-user")
def current_user(user: CurrentUser = Depends(get_current_user)):
    return api_response(200, user, "User fetched successfully")


@router.patch("/update-account")
def update_account(
    payload: AccountUpdate,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return api_response(200, users.update_account(db, user, payload), "Account details updated successfully")


# ─── ISSUES ───────────────────────────────────────────────
@router.post("/issue-form")
def create_issue(
    payload: IssueCreate,
    background_tasks: BackgroundTasks,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    created = issues.create_issue(db, payload, user, background_tasks)
    return api_response(200, created, "Issue created successfully")


@router.get("/issues/department")
def department_issues(
    include_completed: bool = False,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(requires(Role.STAFF)),
):
    rows = issues.list_department_issues(db, user, include_completed)
    return api_response(200, rows, "Issues fetched successfully")


@router.get("/issues/user")
def user_issues(
    include_completed: bool = False,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    rows = issues.list_user_issues(db, user, include_completed)
    return api_response(200, rows, "Issues fetched successfully for the user")


@router.post("/acknowledge-response")
def acknowledge(
    payload: IssueAction,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    row = issues.acknowledge_issue(db, payload.issue_id, user)
    return api_response(200, row, "Issue acknowledged successfully")


@router.post("/complete-issue")
def complete(
    payload: IssueAction,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    row = issues.complete_issue(db, payload.issue_id, user)
    return api_response(200, row, "Issue marked as complete successfully")


@router.post("/reopen-issue")
def reopen(
    payload: IssueAction,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    row = issues.reopen_issue(db, payload.issue_id, user)
    return api_response(200, row, "Issue reopened successfully")


@router.get("/admin-department")
def admin_department(db: Client = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return api_response(200, issues.admin_department(db, user), "Department fetched successfully for the user")


# ─── REPORT ───────────────────────────────────────────────
@router.get("/fetch-report", dependencies=ADMIN_ONLY)
def fetch_report(
    filters: ReportFilters = Depends(),
    db: Client = Depends(get_db),
):
    rows = reports.fetch_report(db, filters)
    return api_response(200, rows, "Report fetched successfully")


# ─── DEPARTMENTS ──────────────────────────────────────────
@router.get("/departments")
def list_departments(db: Client = Depends(get_db)):
    return api_response(200, departments.list_departments(db), "Departments fetched successfully")


@router.post("/departments", dependencies=ADMIN_ONLY)
def add_department(
    payload: DepartmentCreate,
    db: Client = Depends(get_db),
):
    return api_response(201, departments.add_department(db, payload), "Department added successfully")


@router.delete("/departments/{department_id}", dependencies=ADMIN_ONLY)
def delete_department(
    department_id: int,
    db: Client = Depends(get_db),
):
    return api_response(200, departments.delete_department(db, department_id), "Department deleted successfully")


@router.patch("/departments/{department_id}/type", dependencies=ADMIN_ONLY)
def update_department_type(
    department_id: int,
    payload: DepartmentTypeUpdate,
    db: Client = Depends(get_db),
):
    result = departments.update_department_type(db, department_id, payload.type)
    return api_response(200, result, "Department type updated successfully")


@router.get("/departments/{name}/type")
def check_department_type(
    name: str,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return api_response(200, departments.check_department_type(db, name), "Department type fetched successfully")


# ─── ADMIN: USERS ─────────────────────────────────────────
@router.post("/admin/users", dependencies=ADMIN_ONLY)
def admin_create_user(
    payload: UserCreate,
    db: Client = Depends(get_db),
):
    row = users.create_user(db, payload)
    message = "Admin user created successfully" if row.get("is_admin") else "User created successfully"
    return api_response(201, users.to_user_out(row), message)


@router.get("/admin/users", dependencies=ADMIN_ONLY)
def admin_list_users(db: Client = Depends(get_db)):
    return api_response(200, {"users": users.list_users(db)}, "Users fetched successfully")


@router.put("/admin/users/{user_id}", dependencies=ADMIN_ONLY)
def admin_update_user(
    user_id: str,
    payload: UserUpdate,
    db: Client = Depends(get_db),
):
    return api_response(200, users.update_user(db, user_id, payload), "User updated successfully")


@router.delete("/admin/users/{user_id}", dependencies=ADMIN_ONLY)
def admin_delete_user(
    user_id: str,
    db: Client = Depends(get_db),
):
    return api_response(200, users.delete_user(db, user_id), "User deleted successfully")


# ─── LICENSES ─────────────────────────────────────────────
@router.post("/licenses", dependencies=ADMIN_ONLY)
async def upload_license(
    file: UploadFile = File(...),
    expiry_date: date = Form(...),
    department_id: int = Form(...),
    db: Client = Depends(get_db),
):
    bucket = get_settings().license_bucket
    row = await licenses.upload_license(db, bucket, file, expiry_date, department_id)
    return api_response(201, row, "License uploaded successfully")


@router.get("/licenses")
def list_licenses(
    department_id: Optional[int] = None,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return api_response(200, licenses.list_licenses(db, department_id), "Licenses fetched successfully")


@router.get("/licenses/{license_id}")
def view_license(
    license_id: int,
    db: Client = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return api_response(200, licenses.get_license(db, license_id), "License fetched successfully")


@router.put("/licenses/{license_id}", dependencies=ADMIN_ONLY)
async def update_license(
    license_id: int,
    expiry_date: Optional[date] = Form(default=None),
    department_id: Optional[int] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Client = Depends(get_db),
):
    bucket = get_settings().license_bucket
    row = await licenses.update_license(db, bucket, license_id, expiry_date, department_id, file)
    return api_response(200, row, "License updated successfully")


@router.delete("/licenses/{license_id}", dependencies=ADMIN_ONLY)
def delete_license(
    license_id: int,
    db: Client = Depends(get_db),
):
    bucket = get_settings().license_bucket
    return api_response(200, licenses.delete_license(db, bucket, license_id), "License deleted successfully")


# ─── APP ──────────────────────────────────────────────────
def create_app(db_client: Optional[Client] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.db is None:
            app.state.db = create_db_client(settings)
        users.bootstrap_admin(app.state.db, settings)
        yield

    app = FastAPI(title="Issue Tracker", lifespan=lifespan)
    app.state.db = db_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/")
    def home():
        return api_response(200, {"ok": True}, "Service is running")

    return app


app = create_app()
