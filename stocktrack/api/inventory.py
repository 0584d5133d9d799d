from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from stocktrack.api.auth import get_current_user
from stocktrack.api.excel_upload import import_response, read_upload
from stocktrack.database import get_db, get_session_factory
from stocktrack.models.user import User
from stocktrack.schemas.inventory import InventoryItemOut, StockAdjust, StockAdjustOut
from stocktrack.services import ledger_service
from stocktrack.services.import_service import ExcelImportService

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def _items_out(result: dict) -> dict:
    return {**result, "items": [InventoryItemOut.model_validate(i) for i in result["items"]]}


@router.get("", response_model=list[InventoryItemOut])
def list_inventory(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ledger_service.list_in_stock(db)


@router.get("/stats")
def inventory_stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ledger_service.get_stats(db)


@router.get("/low-stock")
def low_stock(
    threshold: int = ledger_service.LOW_STOCK_THRESHOLD,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _items_out(ledger_service.get_low_stock(db, threshold=threshold))


@router.get("/search")
def search_inventory(
    q: str | None = None,
    bin: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _items_out(ledger_service.search(db, q=q, bin=bin))


@router.get("/sku/{sku_id}")
def inventory_by_sku(sku_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ledger_service.get_by_sku(db, sku_id)


@router.post("/update", response_model=StockAdjustOut)
def update_quantity(data: StockAdjust, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = ledger_service.manual_adjust(db, data.sku_id, data.bin, data.quantity_change, data.reason, user)
    return {
        "message": "Inventory updated successfully",
        "item": result["item"],
        "change": result["change"],
    }


@router.post("/import-excel")
def import_inventory_excel(
    file: UploadFile | None = File(None, alias="excelFile"),
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
):
    content = read_upload(file)
    service = ExcelImportService(session_factory, user=user)
    return import_response(file, content, service.import_inventory)
