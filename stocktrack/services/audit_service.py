import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocktrack.models.audit_log import AuditAction, AuditCollection, AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = {"id": "system", "name": "system"}


def actor_of(user) -> dict:
    """Normalise a User row, an actor dict or None into {"id", "name"}."""
    if user is None:
        return dict(SYSTEM_ACTOR)
    if isinstance(user, dict):
        return {"id": str(user.get("id") or "system"), "name": user.get("name") or "system"}
    return {"id": user.id, "name": user.name}


def record(
    db: Session,
    action: AuditAction,
    collection: AuditCollection,
    document_id: str,
    changes: dict,
    user=None,
) -> AuditLog | None:
    """Best-effort audit write.

    The entry is flushed inside a savepoint so a failed write rolls back only
    itself; the surrounding business transaction is left intact. Returns None
    when the write failed.
    """
    actor = actor_of(user)
    try:
        with db.begin_nested():
            entry = AuditLog(
                action_type=action.value,
                collection_name=collection.value,
                document_id=str(document_id),
                changes=changes,
                user_id=actor["id"],
                user_name=actor["name"],
            )
            db.add(entry)
        return entry
    except SQLAlchemyError as e:
        logger.warning("Failed to write audit log %s for %s %s: %s", action.value, collection.value, document_id, e)
        return None


def record_many(db: Session, entries: list[dict], user=None) -> int:
    """Best-effort bulk audit write; returns the number of entries written."""
    if not entries:
        return 0
    actor = actor_of(user)
    try:
        with db.begin_nested():
            db.add_all([
                AuditLog(
                    action_type=e["action"].value,
                    collection_name=e["collection"].value,
                    document_id=str(e["document_id"]),
                    changes=e["changes"],
                    user_id=actor["id"],
                    user_name=actor["name"],
                )
                for e in entries
            ])
        return len(entries)
    except SQLAlchemyError as e:
        logger.warning("Failed to write %d audit log entries: %s", len(entries), e)
        return 0


def list_audit_logs(
    db: Session,
    limit: int = 100,
    collection: str | None = None,
    document_id: str | None = None,
) -> list[AuditLog]:
    q = db.query(AuditLog)
    if collection:
        q = q.filter(AuditLog.collection_name == collection)
    if document_id:
        q = q.filter(AuditLog.document_id == document_id)
    return q.order_by(AuditLog.created_at.desc()).limit(limit).all()
