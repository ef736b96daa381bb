import enum
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import BackgroundTasks
from supabase import Client

from auth import CurrentUser
from database import first_row
from notifications import issue_assigned_text, send_email
from responses import bad_request, conflict, not_found, unauthorized
from schemas import IssueCreate, IssueCreated

logger = logging.getLogger(__name__)

NO_ASSIGNEE_WARNING = "No users are registered in the required department; the issue is logged but unassigned"


class IssueState(str, enum.Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


def give_time() -> str:
    """Server-local time as ``YYYY-MM-DD HH:MM:SS``."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def issue_state(row: dict) -> IssueState:
    if row.get("complete"):
        return IssueState.RESOLVED
    if row.get("acknowledge_at"):
        return IssueState.ACKNOWLEDGED
    return IssueState.OPEN


# ─── CREATE ───────────────────────────────────────────────
def create_issue(
    db: Client,
    payload: IssueCreate,
    reporter: CurrentUser,
    background_tasks: BackgroundTasks,
) -> IssueCreated:
    issue = (payload.issue or "").strip()
    address = (payload.address or "").strip()
    department_name = (payload.require_department or "").strip()
    if not issue or not address or not department_name:
        raise bad_request("All fields are required")

    department = first_row(
        db.table("departments").select("department_id, name").eq("name", department_name).execute()
    )
    if department is None:
        raise not_found("Required department not found")
    department_id = department["department_id"]

    members = db.table("users").select("id, full_name, email, created_at").eq(
        "department_id", department_id
    ).order("created_at").execute().data

    now = give_time()
    created = db.table("issues").insert({
        "issue":                 issue,
        "description":           payload.description,
        "address":               address,
        "require_department_id": department_id,
        "user_id":               reporter.id,
        "complete":              False,
        "acknowledge_at":        None,
        "created_at":            now,
        "updated_at":            now,
    }).execute()
    row = created.data[0]
    logger.info("Issue %s created by %s for department %s", row.get("id"), reporter.id, department_name)

    warning = None
    if not members:
        logger.warning("Department %s has no users; issue %s is unassigned", department_name, row.get("id"))
        warning = NO_ASSIGNEE_WARNING
    else:
        assignee = members[0]
        if assignee.get("email"):
            background_tasks.add_task(
                send_email,
                assignee["email"],
                "New Issue Assigned",
                issue_assigned_text(assignee.get("full_name") or assignee["id"], issue, payload.description, address),
            )
        else:
            logger.warning("No email on file for assignee %s", assignee["id"])

    return IssueCreated(issue=row, warning=warning)


# ─── LIST ─────────────────────────────────────────────────
def list_department_issues(db: Client, user: CurrentUser, include_completed: bool = False) -> List[dict]:
    query = db.table("issues").select("*").eq("require_department_id", user.department_id)
    if not include_completed:
        query = query.eq("complete", False)
    return query.execute().data


def list_user_issues(db: Client, user: CurrentUser, include_completed: bool = False) -> List[dict]:
    query = db.table("issues").select("*").eq("user_id", user.id)
    if not include_completed:
        query = query.eq("complete", False)
    return query.execute().data


# ─── TRANSITIONS ──────────────────────────────────────────
def _load_issue(db: Client, issue_id: int) -> dict:
    row = first_row(db.table("issues").select("*").eq("id", issue_id).execute())
    if row is None:
        raise not_found("No issue found with the provided ID")
    return row


def _check_handler(user: CurrentUser, row: dict, allow_reporter: bool = False) -> None:
    if user.is_admin:
        return
    if user.department_id is not None and user.department_id == row.get("require_department_id"):
        return
    if allow_reporter and user.id == row.get("user_id"):
        return
    raise unauthorized("You are not allowed to change this issue")


def _update(db: Client, issue_id: int, changes: dict) -> dict:
    result = db.table("issues").update(changes).eq("id", issue_id).execute()
    if not result.data:
        # deleted between load and update
        raise not_found("No issue found with the provided ID")
    return result.data[0]


def acknowledge_issue(db: Client, issue_id: int, user: CurrentUser) -> dict:
    row = _load_issue(db, issue_id)
    _check_handler(user, row)
    if issue_state(row) is IssueState.RESOLVED:
        raise conflict("Issue is already resolved; reopen it instead")
    updated = _update(db, issue_id, {"acknowledge_at": give_time()})
    logger.info("Issue %s acknowledged by %s", issue_id, user.id)
    return updated


def complete_issue(db: Client, issue_id: int, user: CurrentUser) -> dict:
    row = _load_issue(db, issue_id)
    _check_handler(user, row)
    if issue_state(row) is IssueState.RESOLVED:
        raise conflict("Issue is already marked as complete")
    updated = _update(db, issue_id, {"complete": True, "updated_at": give_time()})
    logger.info("Issue %s completed by %s", issue_id, user.id)
    return updated


def reopen_issue(db: Client, issue_id: int, user: CurrentUser) -> dict:
    row = _load_issue(db, issue_id)
    _check_handler(user, row, allow_reporter=True)
    if issue_state(row) is not IssueState.RESOLVED:
        raise conflict("Only resolved issues can be reopened")
    now = give_time()
    updated = _update(db, issue_id, {"complete": False, "acknowledge_at": now, "updated_at": now})
    logger.info("Issue %s reopened by %s", issue_id, user.id)
    return updated


def admin_department(db: Client, user: CurrentUser) -> Optional[dict]:
    if user.department_id is None:
        return None
    return first_row(
        db.table("departments").select("*").eq("department_id", user.department_id).execute()
    )
