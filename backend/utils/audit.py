from datetime import datetime

from utils.store import guarded


async def log_audit(
    db,
    actor_id,
    actor_role: str,
    action: str,
    target_type: str,
    target_id,
    metadata: dict | None = None,
):
    await guarded(
        db.audit_logs.insert_one({
            "actor_id": str(actor_id) if actor_id else None,
            "actor_role": actor_role,
            "action": action,
            "target_type": target_type,
            "target_id": str(target_id) if target_id else None,
            "metadata": metadata or {},
            "created_at": datetime.utcnow(),
        }),
        "audit log",
    )
