import logging
from typing import List

from supabase import Client

from database import first_row
from responses import bad_request, conflict, not_found
from schemas import DepartmentCreate

logger = logging.getLogger(__name__)


def get_department_by_name(db: Client, name: str):
    return first_row(db.table("departments").select("*").eq("name", name).execute())


def add_department(db: Client, payload: DepartmentCreate) -> dict:
    name = (payload.name or "").strip()
    dept_type = (payload.type or "").strip()
    if not name or not dept_type:
        raise bad_request("Name and Type are required")
    if get_department_by_name(db, name):
        raise conflict("Department already exists")

    row = db.table("departments").insert({"name": name, "type": dept_type}).execute().data[0]
    logger.info("Department %s (%s) added", name, dept_type)
    return row


def list_departments(db: Client) -> List[dict]:
    return db.table("departments").select("*").order("name").execute().data


def _dependents(db: Client, department_id: int) -> List[str]:
    found = []
    for table, column in (("users", "department_id"), ("issues", "require_department_id"), ("licenses", "department_id")):
        if db.table(table).select("*").eq(column, department_id).limit(1).execute().data:
            found.append(table)
    return found


def delete_department(db: Client, department_id: int) -> dict:
    """Deletion is blocked while users, issues or licenses still reference the department."""
    if not first_row(db.table("departments").select("*").eq("department_id", department_id).execute()):
        raise not_found("Department not found")

    dependents = _dependents(db, department_id)
    if dependents:
        raise conflict(f"Department is still referenced by {', '.join(dependents)}")

    db.table("departments").delete().eq("department_id", department_id).execute()
    logger.info("Department %s deleted", department_id)
    return {"departmentId": department_id}


def update_department_type(db: Client, department_id: int, dept_type: str) -> dict:
    dept_type = (dept_type or "").strip()
    if not dept_type:
        raise bad_request("Type is required")

    result = db.table("departments").update({"type": dept_type}).eq("department_id", department_id).execute()
    if not result.data:
        raise not_found("Department not found")
    return {"departmentId": department_id, "type": dept_type}


def check_department_type(db: Client, name: str) -> dict:
    row = get_department_by_name(db, name)
    if row is None:
        raise not_found("Department not found")
    return {"name": name, "type": row["type"]}
