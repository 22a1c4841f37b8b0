from datetime import datetime

from config.constants import (
    ROLE_ADMIN,
    REPORT_TARGET_TYPES,
    REPORT_TARGET_GENERAL,
    REPORT_TARGET_PRODUCT,
    REPORT_TARGET_USER,
    REPORT_TARGET_MESSAGE,
    REPORT_TARGET_OTHER,
    REPORT_STATUSES,
    REPORT_PENDING,
    REPORT_CLOSED_STATUSES,
    REPORT_DESCRIPTION_MIN,
    REPORT_DESCRIPTION_MAX,
)
from utils.audit import log_audit
from utils.errors import ValidationError, NotFound, Forbidden
from utils.guards import parse_object_id, ensure_admin, is_admin, same_id
from utils.pagination import normalize_page, page_envelope
from utils.store import guarded, update_if

TARGET_COLLECTIONS = {
    REPORT_TARGET_PRODUCT: ("products",),
    REPORT_TARGET_USER: ("users",),
    REPORT_TARGET_MESSAGE: ("messages",),
    REPORT_TARGET_OTHER: ("products", "users", "messages"),
}


async def _target_exists(db, target_type: str, target_oid) -> bool:
    for name in TARGET_COLLECTIONS[target_type]:
        found = await guarded(db[name].find_one({"_id": target_oid}, {"_id": 1}), "resolve report target")
        if found:
            return True
    return False


# -------------------------------------------------
# CREATE REPORT (ANY AUTHENTICATED USER)
# -------------------------------------------------

async def create_report(
    db,
    reporter_id,
    target_type: str,
    target_id,
    reason: str,
    description: str,
) -> dict:
    if target_type not in REPORT_TARGET_TYPES:
        raise ValidationError("Invalid target type", {"field": "target_type", "allowed": sorted(REPORT_TARGET_TYPES)})

    reason = reason.strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("reason is required", {"field": "reason"})

    description = description.strip() if isinstance(description, str) else ""
    if len(description) < REPORT_DESCRIPTION_MIN:
        raise ValidationError(
            f"description must be at least {REPORT_DESCRIPTION_MIN} characters",
            {"field": "description"},
        )
    if len(description) > REPORT_DESCRIPTION_MAX:
        raise ValidationError(
            f"description must be at most {REPORT_DESCRIPTION_MAX} characters",
            {"field": "description"},
        )

    target_oid = None
    if target_type == REPORT_TARGET_GENERAL:
        if target_id:
            target_oid = parse_object_id(target_id, "target_id")
    else:
        if not target_id:
            raise ValidationError("target_id is required for this target type", {"field": "target_id"})
        target_oid = parse_object_id(target_id, "target_id")
        if not await _target_exists(db, target_type, target_oid):
            raise NotFound(f"Target {target_type}", target_id)

    now = datetime.utcnow()
    report = {
        "reporter_id": parse_object_id(reporter_id, "reporter_id") if reporter_id else None,
        "target_type": target_type,
        "target_id": target_oid,
        "reason": reason,
        "description": description,
        "status": REPORT_PENDING,
        "admin_notes": None,
        "reviewed_by": None,
        "resolved_at": None,
        "created_at": now,
        "updated_at": now,
    }

    await guarded(db.reports.insert_one(report), "insert report")
    return report


# -------------------------------------------------
# ADMIN REVIEW
# -------------------------------------------------

async def review_report(
    db,
    actor: dict,
    report_id,
    status: str,
    admin_notes: str | None = None,
) -> dict:
    ensure_admin(actor)

    if status not in REPORT_STATUSES:
        raise ValidationError("Invalid status value", {"field": "status", "allowed": sorted(REPORT_STATUSES)})

    report_oid = parse_object_id(report_id, "report_id")
    now = datetime.utcnow()

    patch = {
        "status": status,
        "reviewed_by": actor["_id"],
        "resolved_at": now if status in REPORT_CLOSED_STATUSES else None,
        "updated_at": now,
    }
    if admin_notes is not None:
        patch["admin_notes"] = admin_notes.strip()

    report = await update_if(db.reports, report_oid, {}, patch, operation="review report")
    if report is None:
        raise NotFound("Report", report_id)

    await log_audit(
        db,
        actor_id=actor["_id"],
        actor_role=ROLE_ADMIN,
        action="REPORT_REVIEWED",
        target_type="report",
        target_id=report_oid,
        metadata={"status": status},
    )
    return report


# -------------------------------------------------
# READS
# -------------------------------------------------

async def list_reports(
    db,
    actor: dict,
    status: str | None = None,
    reason: str | None = None,
    target_type: str | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    ensure_admin(actor)
    page, limit, skip = normalize_page(page, limit)

    query = {}
    if status:
        query["status"] = status
    if reason:
        query["reason"] = reason
    if target_type:
        query["target_type"] = target_type

    cursor = db.reports.find(query).sort("created_at", -1).skip(skip).limit(limit)
    reports = await guarded(cursor.to_list(length=limit), "list reports")
    total = await guarded(db.reports.count_documents(query), "count reports")

    return page_envelope("reports", reports, total, page, limit)


async def list_reports_for_reporter(db, reporter_id) -> list[dict]:
    cursor = db.reports.find({"reporter_id": parse_object_id(reporter_id, "reporter_id")}).sort("created_at", -1)
    return await guarded(cursor.to_list(length=None), "list own reports")


async def get_report(db, actor: dict, report_id) -> dict:
    report = await guarded(
        db.reports.find_one({"_id": parse_object_id(report_id, "report_id")}),
        "get report",
    )
    if not report:
        raise NotFound("Report", report_id)

    if not (same_id(report.get("reporter_id"), actor.get("_id")) or is_admin(actor)):
        raise Forbidden("Not authorized to view this report")
    return report
