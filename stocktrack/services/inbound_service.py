import logging

from sqlalchemy.orm import Session

from stocktrack.errors import NotFoundError, ValidationError
from stocktrack.models.audit_log import AuditAction, AuditCollection
from stocktrack.models.inset import Inset
from stocktrack.models.inventory import InventoryItem
from stocktrack.services import audit_service, ledger_service
from stocktrack.services.audit_service import actor_of

logger = logging.getLogger(__name__)


def record_inbound(
    db: Session,
    sku: str,
    bin: str,
    quantity,
    user=None,
    order_no: str = "",
) -> tuple[Inset, InventoryItem]:
    """Receive stock into a bin.

    The ledger increment happens before the receipt row is written and both
    are committed together, so a failed increment leaves no receipt behind.
    """
    for value, label in ((sku, "SKU ID"), (bin, "Bin Location"), (quantity, "Quantity")):
        if value is None or value == "" or value == 0:
            raise ValidationError(f"{label} is required", received=value)
    quantity = ledger_service.whole_quantity(quantity)
    sku = ledger_service.normalize_sku(sku)
    bin = ledger_service.normalize_bin(bin)
    actor = actor_of(user)

    try:
        item = ledger_service.adjust_stock(db, sku, bin, quantity)
        inset = Inset(
            sku_id=sku,
            order_no=(order_no or "").strip(),
            bin=bin,
            quantity=quantity,
            source="manual",
            user_id=actor["id"],
            user_name=actor["name"],
        )
        db.add(inset)
        db.flush()
        audit_service.record(
            db,
            AuditAction.CREATE,
            AuditCollection.INSET,
            inset.id,
            {"skuId": sku, "bin": bin, "quantity": quantity, "orderNo": inset.order_no, "newStock": item.quantity},
            actor,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(inset)
    db.refresh(item)
    logger.info("Inbound %s x%d into %s (stock now %d)", sku, quantity, bin, item.quantity)
    return inset, item


def list_insets(db: Session, skip: int = 0, limit: int = 500) -> list[Inset]:
    return db.query(Inset).order_by(Inset.created_at.desc()).offset(skip).limit(limit).all()


def get_inset(db: Session, inset_id: str) -> Inset:
    inset = db.query(Inset).filter(Inset.id == inset_id).first()
    if not inset:
        raise NotFoundError("Inset not found")
    return inset
