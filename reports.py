import logging
from datetime import date, datetime
from typing import List, Optional, Union

from supabase import Client

from database import fetch_all
from schemas import ReportFilters, ReportRow

logger = logging.getLogger(__name__)

DISPLAY_FORMAT = "%d-%m-%Y %H:%M:%S"


def _parse(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    # store returns either "YYYY-MM-DD HH:MM:SS" or ISO "YYYY-MM-DDTHH:MM:SS[.ffffff][+00:00]"
    return datetime.fromisoformat(str(value))


def format_timestamp(value: Union[str, datetime, None]) -> Optional[str]:
    """Render a stored timestamp as ``DD-MM-YYYY HH:MM:SS``. No timezone conversion."""
    parsed = _parse(value)
    return parsed.strftime(DISPLAY_FORMAT) if parsed else None


def _matches(name: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return name is not None and needle.strip().lower() in name.lower()


def _in_range(created_at: Optional[datetime], start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True
    if created_at is None:
        return False
    day = created_at.date()
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def fetch_report(
    db: Client, filters: Optional[ReportFilters] = None, page_size: Optional[int] = None
) -> List[ReportRow]:
    filters = filters or ReportFilters()

    issues = fetch_all(lambda: db.table("issues").select("*").order("id"), page_size)
    departments = {
        d["department_id"]: d["name"]
        for d in fetch_all(
            lambda: db.table("departments").select("department_id, name").order("department_id"), page_size
        )
    }
    users = {
        u["id"]: u
        for u in fetch_all(lambda: db.table("users").select("id, full_name, department_id").order("id"), page_size)
    }

    rows = []
    for issue in issues:
        required_name = departments.get(issue.get("require_department_id"))
        if required_name is None:
            logger.warning("Issue %s references missing department %s", issue.get("id"), issue.get("require_department_id"))
            continue

        reporter = users.get(issue.get("user_id")) or {}
        reporter_department = departments.get(reporter.get("department_id"))
        created_at = _parse(issue.get("created_at"))

        if not _in_range(created_at, filters.start_date, filters.end_date):
            continue
        if not _matches(required_name, filters.required_department):
            continue
        if not _matches(reporter_department, filters.reported_department):
            continue

        rows.append(ReportRow(
            id=issue["id"],
            issue=issue["issue"],
            description=issue.get("description"),
            address=issue.get("address"),
            require_department_id=issue.get("require_department_id"),
            required_department_name=required_name,
            complete=bool(issue.get("complete")),
            user_id=issue.get("user_id"),
            user_name=reporter.get("full_name"),
            user_department_name=reporter_department,
            acknowledge_at=format_timestamp(issue.get("acknowledge_at")),
            created_at=format_timestamp(created_at),
            updated_at=format_timestamp(issue.get("updated_at")),
        ))
    return rows
