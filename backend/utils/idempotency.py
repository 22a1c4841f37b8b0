from datetime import datetime
from pymongo.errors import DuplicateKeyError

from utils.errors import Conflict
from utils.store import guarded

IDEMPOTENCY_TTL_SECONDS = 60 * 60 * 24  # 24 hours
IN_PROGRESS_STALE_SECONDS = 60 * 10     # 10 minutes


def _in_progress(key: str) -> Conflict:
    return Conflict(
        "Request already in progress",
        {"reason": "request_in_progress", "idempotency_key": key},
    )


async def reserve_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
):
    """
    Reserve an idempotency key.
    Returns the stored result when the key already completed, raises Conflict
    while another request holds it, and returns None when the caller may proceed.
    A reservation older than IN_PROGRESS_STALE_SECONDS is expired and retaken.
    """
    existing = await guarded(
        db.idempotency_keys.find_one({"key": key, "scope": scope}),
        "idempotency lookup",
    )

    if existing:
        if existing.get("status") == "completed":
            return existing.get("result")

        created_at = existing.get("created_at")
        age_seconds = (
            (datetime.utcnow() - created_at).total_seconds()
            if created_at else 0
        )
        if age_seconds <= IN_PROGRESS_STALE_SECONDS and existing.get("status") == "reserved":
            raise _in_progress(key)

        await guarded(
            db.idempotency_keys.delete_one({"_id": existing["_id"]}),
            "idempotency expire",
        )

    try:
        await guarded(
            db.idempotency_keys.insert_one({
                "key": key,
                "scope": scope,
                "status": "reserved",
                "result": None,
                "created_at": datetime.utcnow(),
            }),
            "idempotency reserve",
        )
    except DuplicateKeyError:
        # Concurrent request won the race
        concurrent = await guarded(
            db.idempotency_keys.find_one({"key": key, "scope": scope}),
            "idempotency lookup",
        )
        if concurrent and concurrent.get("status") == "completed":
            return concurrent.get("result")
        raise _in_progress(key)
    return None


async def complete_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    result: dict,
):
    await guarded(
        db.idempotency_keys.update_one(
            {"key": key, "scope": scope},
            {
                "$set": {
                    "status": "completed",
                    "result": result,
                    "completed_at": datetime.utcnow(),
                }
            },
        ),
        "idempotency complete",
    )


async def fail_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    error: str,
):
    """
    Mark idempotency key as failed so retries can be attempted explicitly.
    """
    await guarded(
        db.idempotency_keys.update_one(
            {"key": key, "scope": scope},
            {
                "$set": {
                    "status": "failed",
                    "error": error,
                    "failed_at": datetime.utcnow(),
                }
            },
        ),
        "idempotency fail",
    )


async def clear_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
):
    await guarded(
        db.idempotency_keys.delete_one({"key": key, "scope": scope}),
        "idempotency clear",
    )
