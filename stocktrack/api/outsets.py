from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stocktrack.api.auth import get_current_user, require_admin
from stocktrack.database import get_db
from stocktrack.models.user import User
from stocktrack.schemas.outset import (
    BatchOutsetCreate,
    BatchOutsetCreated,
    BatchSummaryOut,
    OutsetCreate,
    OutsetCreated,
    OutsetOut,
)
from stocktrack.services import outbound_service

router = APIRouter(prefix="/outsets", tags=["Outbound"])


@router.post("/batch", response_model=BatchOutsetCreated, status_code=201)
def create_batch_outset(data: BatchOutsetCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = outbound_service.record_outbound_batch(db, data.items, data.customer_name, data.invoice_no, user)
    return {
        "message": f"Batch outbound created with {len(result['createdRecords'])} item(s)",
        "batch_id": result["batchId"],
        "created_records": result["createdRecords"],
    }


@router.get("/batch/{batch_id}", response_model=BatchSummaryOut)
def get_batch_summary(batch_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    summary = outbound_service.get_batch_summary(db, batch_id)
    return {
        "batch_id": summary["batchId"],
        "customer_name": summary["customerName"],
        "invoice_no": summary["invoiceNo"],
        "created_at": summary["createdAt"],
        "created_by": summary["createdBy"],
        "total_items": summary["totalItems"],
        "total_quantity": summary["totalQuantity"],
        "items": summary["items"],
    }


@router.delete("/batch/{batch_id}")
def delete_batch(batch_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    result = outbound_service.delete_batch(db, batch_id, admin)
    return {"message": f"Batch {batch_id} deleted and stock restored", **result}


@router.get("", response_model=list[OutsetOut])
def list_outsets(
    skip: int = 0,
    limit: int = 500,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return outbound_service.list_outsets(db, skip=skip, limit=limit)


@router.post("", response_model=OutsetCreated, status_code=201)
def create_outset(data: OutsetCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    outset, inventory = outbound_service.record_outbound(
        db, data.sku_id, data.quantity, data.customer_name, data.invoice_no, data.bin, user
    )
    return {"message": "Outset created successfully", "outset": outset, "inventory": inventory}


@router.delete("/{outset_id}")
def delete_outset(outset_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    deleted = outbound_service.delete_outset(db, outset_id, admin)
    return {"message": "Outset deleted and stock restored", "deleted": deleted}
