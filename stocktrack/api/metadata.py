from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stocktrack.api.auth import get_current_user, require_admin
from stocktrack.database import get_db
from stocktrack.models.user import User
from stocktrack.schemas.metadata import MetadataCreate, MetadataOut, MetadataUpdate
from stocktrack.services import metadata_service

router = APIRouter(prefix="/metadata", tags=["Metadata"])


@router.get("/all")
def all_metadata(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return metadata_service.get_all_names(db)


@router.get("/bins", response_model=list[MetadataOut])
def list_bins(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return metadata_service.list_active(db, "bins")


@router.get("/{kind}", response_model=list[MetadataOut])
def list_entries(kind: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return metadata_service.list_active(db, kind)


@router.post("/{kind}", response_model=MetadataOut, status_code=201)
def create_entry(kind: str, data: MetadataCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return metadata_service.create_entry(db, kind, data.name, admin.id)


@router.put("/{kind}/{entry_id}", response_model=MetadataOut)
def update_entry(
    kind: str,
    entry_id: str,
    data: MetadataUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return metadata_service.update_entry(db, kind, entry_id, name=data.name, is_active=data.is_active)


@router.delete("/{kind}/{entry_id}")
def delete_entry(kind: str, entry_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    metadata_service.delete_entry(db, kind, entry_id)
    return {"message": "Deleted successfully"}
