from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stocktrack.api.auth import require_admin
from stocktrack.database import get_db, get_session_factory
from stocktrack.models.user import User, UserStatus
from stocktrack.schemas.user import UserOut
from stocktrack.services import audit_service, auth_service
from stocktrack.services.cleanup_service import CleanupScheduler

router = APIRouter(prefix="/admin", tags=["Admin"])


class AuditLogOut(BaseModel):
    id: str
    action_type: str
    collection_name: str
    document_id: str
    changes: dict
    user_id: str
    user_name: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


def get_cleanup_scheduler(request: Request, session_factory=Depends(get_session_factory)) -> CleanupScheduler:
    scheduler = getattr(request.app.state, "cleanup_scheduler", None)
    if scheduler is None:
        # Scheduling disabled; manual runs still work.
        scheduler = CleanupScheduler(session_factory)
    return scheduler


@router.get("/pending-users", response_model=list[UserOut])
def pending_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return auth_service.list_users_by_status(db, UserStatus.PENDING)


@router.get("/approved-users", response_model=list[UserOut])
def approved_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return auth_service.list_users_by_status(db, UserStatus.APPROVED)


@router.put("/{user_id}/approve")
def approve_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.set_status(db, user_id, UserStatus.APPROVED)
    return {"message": f"User {user.name} approved", "user": UserOut.model_validate(user)}


@router.put("/{user_id}/reject")
def reject_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.set_status(db, user_id, UserStatus.REJECTED)
    return {"message": f"User {user.name} rejected", "user": UserOut.model_validate(user)}


@router.put("/{user_id}/role")
def toggle_role(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.toggle_role(db, user_id, acting_user=admin)
    return {"message": f"User {user.name} is now {user.role}", "user": UserOut.model_validate(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    auth_service.delete_user(db, user_id, acting_user=admin)
    return {"message": "User deleted successfully"}


@router.get("/cleanup/stats")
def cleanup_stats(admin: User = Depends(require_admin), scheduler: CleanupScheduler = Depends(get_cleanup_scheduler)):
    return scheduler.get_stats()


@router.post("/cleanup/run")
def run_cleanup(admin: User = Depends(require_admin), scheduler: CleanupScheduler = Depends(get_cleanup_scheduler)):
    log = scheduler.run_manual()
    if log is None:
        return {"message": "No zero-stock items eligible for cleanup", "log": None}
    return {"message": f"Cleanup {log['status']}", "log": log}


@router.get("/audit-logs", response_model=list[AuditLogOut])
def audit_logs(
    limit: int = 100,
    collection: str | None = None,
    document_id: str | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return audit_service.list_audit_logs(db, limit=limit, collection=collection, document_id=document_id)
