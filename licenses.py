import logging
import uuid
from datetime import date
from typing import List, Optional

from fastapi import UploadFile
from supabase import Client

from database import first_row
from responses import bad_request, not_found
from schemas import LicenseOut

logger = logging.getLogger(__name__)


def _department_names(db: Client) -> dict:
    return {
        d["department_id"]: d["name"]
        for d in db.table("departments").select("department_id, name").execute().data
    }


def _to_out(row: dict, departments: dict) -> LicenseOut:
    return LicenseOut(**row, department_name=departments.get(row.get("department_id")))


def _require_department(db: Client, department_id: int) -> None:
    if not db.table("departments").select("department_id").eq("department_id", department_id).execute().data:
        raise not_found("Department not found")


async def _store_file(db: Client, bucket: str, file: UploadFile) -> dict:
    if not file.filename:
        raise bad_request("A license file is required")
    file_bytes = await file.read()
    if not file_bytes:
        raise bad_request("Uploaded file is empty")
    file_path = f"{uuid.uuid4()}-{file.filename}"
    storage = db.storage.from_(bucket)
    storage.upload(file_path, file_bytes, {"content-type": file.content_type or "application/octet-stream"})
    return {
        "file_name": file.filename,
        "file_path": file_path,
        "file_url":  storage.get_public_url(file_path),
    }


def _discard_file(db: Client, bucket: str, file_path: str) -> None:
    logger.error("Removing orphaned upload %s after failed write", file_path)
    db.storage.from_(bucket).remove([file_path])


def _load(db: Client, license_id: int) -> dict:
    row = first_row(db.table("licenses").select("*").eq("id", license_id).execute())
    if row is None:
        raise not_found("License not found")
    return row


async def upload_license(db: Client, bucket: str, file: UploadFile, expiry_date: date, department_id: int) -> LicenseOut:
    _require_department(db, department_id)
    stored = await _store_file(db, bucket, file)
    try:
        row = db.table("licenses").insert({
            **stored,
            "expiry_date":   expiry_date.isoformat(),
            "department_id": department_id,
        }).execute().data[0]
    except Exception:
        _discard_file(db, bucket, stored["file_path"])
        raise
    logger.info("License %s uploaded for department %s", row["id"], department_id)
    return _to_out(row, _department_names(db))


def list_licenses(db: Client, department_id: Optional[int] = None) -> List[LicenseOut]:
    query = db.table("licenses").select("*")
    if department_id is not None:
        query = query.eq("department_id", department_id)
    departments = _department_names(db)
    return [_to_out(row, departments) for row in query.order("expiry_date").execute().data]


def get_license(db: Client, license_id: int) -> LicenseOut:
    return _to_out(_load(db, license_id), _department_names(db))


async def update_license(
    db: Client,
    bucket: str,
    license_id: int,
    expiry_date: Optional[date] = None,
    department_id: Optional[int] = None,
    file: Optional[UploadFile] = None,
) -> LicenseOut:
    existing = _load(db, license_id)
    changes = {}
    if expiry_date is not None:
        changes["expiry_date"] = expiry_date.isoformat()
    if department_id is not None:
        _require_department(db, department_id)
        changes["department_id"] = department_id
    if file is not None and file.filename:
        changes.update(await _store_file(db, bucket, file))
    if not changes:
        raise bad_request("No fields provided for update")

    try:
        row = db.table("licenses").update(changes).eq("id", license_id).execute().data[0]
    except Exception:
        if "file_path" in changes:
            _discard_file(db, bucket, changes["file_path"])
        raise
    if "file_path" in changes:
        db.storage.from_(bucket).remove([existing["file_path"]])
    logger.info("License %s updated: %s", license_id, sorted(changes))
    return _to_out(row, _department_names(db))


def delete_license(db: Client, bucket: str, license_id: int) -> dict:
    existing = _load(db, license_id)
    db.table("licenses").delete().eq("id", license_id).execute()
    db.storage.from_(bucket).remove([existing["file_path"]])
    logger.info("License %s deleted", license_id)
    return {"licenseId": license_id}
