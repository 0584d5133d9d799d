from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from stocktrack.api.auth import get_current_user
from stocktrack.api.excel_upload import import_response, read_upload
from stocktrack.database import get_db, get_session_factory
from stocktrack.models.user import User
from stocktrack.schemas.inset import InsetCreate, InsetCreated, InsetOut
from stocktrack.services import inbound_service
from stocktrack.services.import_service import ExcelImportService

router = APIRouter(prefix="/insets", tags=["Inbound"])


@router.post("", response_model=InsetCreated, status_code=201)
def create_inset(data: InsetCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    inset, item = inbound_service.record_inbound(db, data.sku_id, data.bin, data.quantity, user, data.order_no)
    return {"message": "Inset created successfully", "inset": inset, "inventory": item}


@router.get("", response_model=list[InsetOut])
def list_insets(
    skip: int = 0,
    limit: int = 500,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return inbound_service.list_insets(db, skip=skip, limit=limit)


@router.post("/import-excel")
def import_inbound_excel(
    file: UploadFile | None = File(None, alias="excelFile"),
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
):
    content = read_upload(file)
    service = ExcelImportService(session_factory, user=user)
    return import_response(file, content, service.import_inbound)


@router.get("/{inset_id}", response_model=InsetOut)
def get_inset(inset_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return inbound_service.get_inset(db, inset_id)
