"""Inventory ledger: the only code path that changes on-hand quantities.

Every mutation is a single conditional UPDATE, so concurrent writers to the
same SKU+bin serialise on the row and the quantity can never go negative.
Functions here flush but never commit; the caller owns the transaction.
"""

import logging

from sqlalchemy import case, distinct, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stocktrack.database import utcnow
from stocktrack.errors import InsufficientStockError, NotFoundError, UnknownItemError, ValidationError
from stocktrack.models.audit_log import AuditAction, AuditCollection
from stocktrack.models.inventory import InventoryItem
from stocktrack.services import audit_service

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 10
SEARCH_LIMIT = 100
_INSERT_RETRIES = 3


def normalize_sku(sku: str) -> str:
    return (sku or "").strip().upper()


def normalize_bin(bin: str) -> str:
    return (bin or "").strip().upper()


def whole_quantity(value, field: str = "quantity") -> int:
    """Positive whole number; ``2.5`` is rejected rather than truncated to ``2``."""
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a whole number", field=field, received=value)
    if not isinstance(value, str) and quantity != value:
        raise ValidationError("Quantity must be a whole number", field=field, received=value)
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0", field=field, received=value)
    return quantity


def get_item(db: Session, sku: str, bin: str) -> InventoryItem | None:
    return (
        db.query(InventoryItem)
        .filter(InventoryItem.sku_id == normalize_sku(sku), InventoryItem.bin == normalize_bin(bin))
        .first()
    )


def adjust_stock(db: Session, sku: str, bin: str, delta: int, name: str | None = None) -> InventoryItem:
    """Apply ``delta`` to the SKU+bin record, creating it on first receipt."""
    sku = normalize_sku(sku)
    bin = normalize_bin(bin)
    if not sku or not bin:
        raise ValidationError("SKU and bin are required")
    delta = int(delta)

    for _ in range(_INSERT_RETRIES):
        values = {"quantity": InventoryItem.quantity + delta, "last_updated": utcnow()}
        if name:
            values["name"] = name
        result = db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.sku_id == sku,
                InventoryItem.bin == bin,
                InventoryItem.quantity + delta >= 0,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return (
                db.query(InventoryItem)
                .populate_existing()
                .filter(InventoryItem.sku_id == sku, InventoryItem.bin == bin)
                .one()
            )

        existing = (
            db.query(InventoryItem)
            .populate_existing()
            .filter(InventoryItem.sku_id == sku, InventoryItem.bin == bin)
            .first()
        )
        if existing:
            raise InsufficientStockError(
                f"Insufficient stock in bin {bin}. Only {existing.quantity} available",
                available=existing.quantity,
                requested=-delta,
                skuId=sku,
                bin=bin,
            )
        if delta <= 0:
            raise UnknownItemError(f"Cannot remove non-existent item {sku} from bin {bin}", skuId=sku, bin=bin)

        try:
            with db.begin_nested():
                item = InventoryItem(
                    sku_id=sku,
                    bin=bin,
                    name=name or f"Item {sku}",
                    quantity=delta,
                    last_updated=utcnow(),
                )
                db.add(item)
            return item
        except IntegrityError:
            # Another writer created the same SKU+bin first; apply as an update.
            logger.info("Concurrent create of %s/%s, retrying as update", sku, bin)

    raise RuntimeError(f"Could not adjust stock for {sku}/{bin}")


def bins_for_sku(db: Session, sku: str) -> list[dict]:
    items = (
        db.query(InventoryItem)
        .filter(InventoryItem.sku_id == normalize_sku(sku), InventoryItem.quantity > 0)
        .order_by(InventoryItem.bin)
        .all()
    )
    return [{"bin": i.bin, "quantity": i.quantity} for i in items]


def manual_adjust(db: Session, sku: str, bin: str, change: int, reason: str = "", user=None) -> dict:
    """Operator correction of an existing SKU+bin record."""
    if not sku:
        raise ValidationError("SKU ID is required")
    if not bin:
        raise ValidationError("Bin location is required")
    if not change:
        raise ValidationError("Quantity change is required and cannot be zero")

    item = get_item(db, sku, bin)
    if not item:
        other_bins = bins_for_sku(db, sku)
        if other_bins:
            raise NotFoundError(f"SKU {sku} not found in bin {bin}", availableInBins=other_bins)
        raise NotFoundError("SKU not found in inventory")

    old_qty = item.quantity
    try:
        item = adjust_stock(db, sku, bin, change)
    except InsufficientStockError:
        db.rollback()
        raise
    audit_service.record(
        db,
        AuditAction.STOCK_INCREASE if change > 0 else AuditAction.STOCK_DECREASE,
        AuditCollection.INVENTORY,
        item.id,
        {
            "skuId": item.sku_id,
            "bin": item.bin,
            "oldQuantity": old_qty,
            "newQuantity": item.quantity,
            "change": change,
            "reason": reason or "Manual adjustment",
        },
        user,
    )
    db.commit()
    db.refresh(item)
    logger.info("Adjusted %s in bin %s: %d -> %d", item.sku_id, item.bin, old_qty, item.quantity)
    return {"item": item, "change": {"from": old_qty, "to": item.quantity, "difference": change}}


def list_in_stock(db: Session) -> list[InventoryItem]:
    return (
        db.query(InventoryItem)
        .filter(InventoryItem.quantity > 0)
        .order_by(InventoryItem.sku_id, InventoryItem.bin)
        .all()
    )


def _group_by_sku(items: list[InventoryItem]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {}
    for item in items:
        grouped.setdefault(item.sku_id, []).append({"bin": item.bin, "quantity": item.quantity, "id": item.id})
    return grouped


def get_stats(db: Session) -> dict:
    row = db.query(
        func.count(InventoryItem.id),
        func.coalesce(func.sum(InventoryItem.quantity), 0),
        func.coalesce(
            func.sum(case(((InventoryItem.quantity > 0) & (InventoryItem.quantity < LOW_STOCK_THRESHOLD), 1), else_=0)),
            0,
        ),
        func.coalesce(func.sum(case((InventoryItem.quantity == 0, 1), else_=0)), 0),
        func.count(distinct(InventoryItem.bin)),
        func.count(distinct(InventoryItem.sku_id)),
    ).one()

    bin_counts = (
        db.query(InventoryItem.sku_id, func.count(InventoryItem.id))
        .filter(InventoryItem.quantity > 0)
        .group_by(InventoryItem.sku_id)
        .all()
    )
    return {
        "totalRecords": row[0],
        "totalQuantity": int(row[1]),
        "lowStockRecords": int(row[2]),
        "outOfStockRecords": int(row[3]),
        "uniqueBinsCount": row[4],
        "uniqueSKUsCount": row[5],
        "multiLocationSKUs": sum(1 for _, n in bin_counts if n > 1),
        "singleLocationSKUs": sum(1 for _, n in bin_counts if n == 1),
    }


def get_low_stock(db: Session, threshold: int = LOW_STOCK_THRESHOLD) -> dict:
    items = (
        db.query(InventoryItem)
        .filter(InventoryItem.quantity > 0, InventoryItem.quantity < threshold)
        .order_by(InventoryItem.quantity, InventoryItem.sku_id, InventoryItem.bin)
        .all()
    )
    grouped = _group_by_sku(items)
    return {
        "items": items,
        "groupedBySKU": grouped,
        "summary": {"totalLowStockRecords": len(items), "uniqueSKUsAffected": len(grouped)},
    }


def search(db: Session, q: str | None = None, bin: str | None = None) -> dict:
    query = db.query(InventoryItem).filter(InventoryItem.quantity > 0)
    if q:
        query = query.filter(InventoryItem.sku_id.ilike(f"%{q}%"))
    if bin:
        query = query.filter(InventoryItem.bin.ilike(f"%{bin}%"))
    items = query.order_by(InventoryItem.sku_id, InventoryItem.bin).limit(SEARCH_LIMIT).all()
    grouped = _group_by_sku(items)
    return {
        "items": items,
        "groupedBySKU": grouped,
        "summary": {"totalRecords": len(items), "uniqueSKUs": len(grouped)},
    }


def get_by_sku(db: Session, sku: str) -> dict:
    items = (
        db.query(InventoryItem)
        .filter(InventoryItem.sku_id == normalize_sku(sku), InventoryItem.quantity > 0)
        .order_by(InventoryItem.bin)
        .all()
    )
    if not items:
        raise NotFoundError("SKU not found or out of stock")
    total = sum(i.quantity for i in items)
    return {
        "skuId": normalize_sku(sku),
        "totalQuantity": total,
        "binLocations": [
            {"bin": i.bin, "quantity": i.quantity, "id": i.id, "lastUpdated": i.last_updated} for i in items
        ],
        "summary": {"binCount": len(items), "totalQuantity": total},
    }
