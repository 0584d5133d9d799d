"""Outbound shipments, single and batched.

A batch is validated in full against one snapshot of the ledger before any
row is touched; the decrement, the outset rows and the audit entries then go
out in one transaction, so a partially shipped order is never visible.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import and_, bindparam, or_, update
from sqlalchemy.orm import Session

from stocktrack.database import utcnow
from stocktrack.errors import BatchValidationError, ConflictError, InsufficientStockError, NotFoundError, ValidationError
from stocktrack.models.audit_log import AuditAction, AuditCollection
from stocktrack.models.inventory import InventoryItem
from stocktrack.models.outset import Outset
from stocktrack.services import audit_service, ledger_service
from stocktrack.services.audit_service import actor_of

logger = logging.getLogger(__name__)

_inventory = InventoryItem.__table__


def _generate_batch_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    short = uuid.uuid4().hex[:6].upper()
    return f"BATCH-{ts}-{short}"


def _require(fields: dict[str, tuple]) -> None:
    for field, (value, label) in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()) or value == 0:
            raise ValidationError(f"{label} is required", field=field, received=value)


def record_outbound(
    db: Session,
    sku_id: str,
    quantity,
    customer_name: str,
    invoice_no: str,
    bin: str,
    user=None,
) -> tuple[Outset, dict]:
    _require({
        "skuId": (sku_id, "SKU ID"),
        "quantity": (quantity, "Quantity"),
        "customerName": (customer_name, "Customer Name"),
        "invoiceNo": (invoice_no, "Invoice Number"),
        "bin": (bin, "Bin Location"),
    })
    quantity = ledger_service.whole_quantity(quantity)
    sku_id = ledger_service.normalize_sku(sku_id)
    bin = ledger_service.normalize_bin(bin)
    actor = actor_of(user)

    item = ledger_service.get_item(db, sku_id, bin)
    if not item:
        raise NotFoundError(
            f"SKU {sku_id} not found in bin {bin}",
            skuId=sku_id,
            availableInBins=ledger_service.bins_for_sku(db, sku_id),
        )
    if item.quantity < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Only {item.quantity} available",
            available=item.quantity,
            requested=quantity,
        )

    old_qty = item.quantity
    try:
        item = ledger_service.adjust_stock(db, sku_id, bin, -quantity)
        outset = Outset(
            sku_id=sku_id,
            name=item.name,
            quantity=quantity,
            bin=bin,
            customer_name=customer_name.strip(),
            invoice_no=invoice_no.strip(),
            user_id=actor["id"],
            user_name=actor["name"],
        )
        db.add(outset)
        db.flush()
        audit_service.record(
            db,
            AuditAction.STOCK_DECREASE,
            AuditCollection.OUTSET,
            outset.id,
            {
                "skuId": sku_id,
                "bin": bin,
                "quantity": -quantity,
                "customerName": outset.customer_name,
                "invoiceNo": outset.invoice_no,
                "oldStock": old_qty,
                "newStock": item.quantity,
            },
            actor,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(outset)
    logger.info("Outbound %s x%d from %s for %s", sku_id, quantity, bin, outset.customer_name)
    return outset, {
        "skuId": sku_id,
        "oldQuantity": old_qty,
        "newQuantity": item.quantity,
        "removed": quantity,
    }


def _line_value(line, *names):
    for name in names:
        value = line.get(name) if isinstance(line, dict) else getattr(line, name, None)
        if value not in (None, ""):
            return value
    return None


def record_outbound_batch(db: Session, items: list, customer_name: str, invoice_no: str, user=None) -> dict:
    """Ship several lines as one all-or-nothing batch."""
    _require({
        "customerName": (customer_name, "Customer Name"),
        "invoiceNo": (invoice_no, "Invoice Number"),
    })
    if not items:
        raise ValidationError("At least one item is required")
    actor = actor_of(user)

    errors: list[dict] = []
    lines: list[dict] = []
    for index, raw in enumerate(items):
        sku = ledger_service.normalize_sku(_line_value(raw, "sku_id", "skuId") or "")
        bin = ledger_service.normalize_bin(_line_value(raw, "bin") or "")
        qty_raw = _line_value(raw, "quantity")
        if not sku or not bin:
            errors.append({"index": index, "skuId": sku, "bin": bin, "message": "SKU ID and bin are required"})
            continue
        try:
            qty = ledger_service.whole_quantity(qty_raw)
        except ValidationError as e:
            errors.append({"index": index, "skuId": sku, "bin": bin, "message": e.message})
            continue
        lines.append({"index": index, "skuId": sku, "bin": bin, "quantity": qty})

    keys = {(line["skuId"], line["bin"]) for line in lines}
    records: dict[tuple[str, str], InventoryItem] = {}
    if keys:
        found = (
            db.query(InventoryItem)
            .filter(or_(*[and_(InventoryItem.sku_id == s, InventoryItem.bin == b) for s, b in keys]))
            .with_for_update()
            .all()
        )
        records = {(r.sku_id, r.bin): r for r in found}

    requested: dict[tuple[str, str], int] = {}
    for line in lines:
        key = (line["skuId"], line["bin"])
        requested[key] = requested.get(key, 0) + line["quantity"]

    for line in lines:
        key = (line["skuId"], line["bin"])
        record = records.get(key)
        if record is None:
            errors.append({
                "index": line["index"],
                "skuId": line["skuId"],
                "bin": line["bin"],
                "message": f"SKU {line['skuId']} not found in bin {line['bin']}",
            })
        elif requested[key] > record.quantity:
            errors.append({
                "index": line["index"],
                "skuId": line["skuId"],
                "bin": line["bin"],
                "message": f"Insufficient stock. Only {record.quantity} available",
                "available": record.quantity,
                "requested": requested[key],
            })

    if errors:
        errors.sort(key=lambda e: e["index"])
        db.rollback()
        raise BatchValidationError(errors)

    batch_id = _generate_batch_id()
    try:
        params = [{"item_id": records[key].id, "qty": qty} for key, qty in requested.items()]
        decrement = (
            update(_inventory)
            .where(_inventory.c.id == bindparam("item_id"), _inventory.c.quantity >= bindparam("qty"))
            .values(quantity=_inventory.c.quantity - bindparam("qty"), last_updated=utcnow())
        )
        if db.get_bind().dialect.supports_sane_multi_rowcount:
            updated = db.execute(decrement, params).rowcount
        else:
            # executemany counts are unreliable here; check each key on its own
            updated = sum(db.execute(decrement, p).rowcount for p in params)
        if updated != len(params):
            raise ConflictError("Stock changed while the batch was being processed; nothing was shipped")

        outsets = [
            Outset(
                sku_id=line["skuId"],
                name=records[(line["skuId"], line["bin"])].name,
                quantity=line["quantity"],
                bin=line["bin"],
                customer_name=customer_name.strip(),
                invoice_no=invoice_no.strip(),
                batch_id=batch_id,
                user_id=actor["id"],
                user_name=actor["name"],
            )
            for line in lines
        ]
        db.add_all(outsets)
        db.flush()

        audit_service.record_many(
            db,
            [
                {
                    "action": AuditAction.BATCH_STOCK_DECREASE,
                    "collection": AuditCollection.OUTSET,
                    "document_id": o.id,
                    "changes": {
                        "batchId": batch_id,
                        "skuId": o.sku_id,
                        "bin": o.bin,
                        "quantity": -o.quantity,
                        "customerName": o.customer_name,
                        "invoiceNo": o.invoice_no,
                    },
                }
                for o in outsets
            ],
            actor,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Batch %s rolled back", batch_id)
        raise

    for o in outsets:
        db.refresh(o)
    logger.info("Batch %s shipped %d line(s) to %s", batch_id, len(outsets), customer_name)
    return {"batchId": batch_id, "createdRecords": outsets}


def list_outsets(db: Session, skip: int = 0, limit: int = 500) -> list[Outset]:
    return db.query(Outset).order_by(Outset.created_at.desc()).offset(skip).limit(limit).all()


def get_batch_summary(db: Session, batch_id: str) -> dict:
    outsets = db.query(Outset).filter(Outset.batch_id == batch_id).order_by(Outset.created_at).all()
    if not outsets:
        raise NotFoundError("Batch not found", batchId=batch_id)
    first = outsets[0]
    return {
        "batchId": batch_id,
        "customerName": first.customer_name,
        "invoiceNo": first.invoice_no,
        "createdAt": first.created_at,
        "createdBy": first.user_name,
        "totalItems": len(outsets),
        "totalQuantity": sum(o.quantity for o in outsets),
        "items": outsets,
    }


def _restore(db: Session, amounts: dict[tuple[str, str], int]) -> None:
    """Put quantities back; records removed by cleanup in the meantime are recreated."""
    existing = (
        db.query(InventoryItem)
        .filter(or_(*[and_(InventoryItem.sku_id == s, InventoryItem.bin == b) for s, b in amounts]))
        .all()
    )
    by_key = {(r.sku_id, r.bin): r for r in existing}
    params = [{"item_id": by_key[key].id, "qty": qty} for key, qty in amounts.items() if key in by_key]
    if params:
        db.execute(
            update(_inventory)
            .where(_inventory.c.id == bindparam("item_id"))
            .values(quantity=_inventory.c.quantity + bindparam("qty"), last_updated=utcnow()),
            params,
        )
    for (sku, bin), qty in amounts.items():
        if (sku, bin) not in by_key:
            ledger_service.adjust_stock(db, sku, bin, qty)


def delete_outset(db: Session, outset_id: str, user=None) -> dict:
    outset = db.query(Outset).filter(Outset.id == outset_id).first()
    if not outset:
        raise NotFoundError("Outset not found")
    deleted = {"id": outset.id, "skuId": outset.sku_id, "bin": outset.bin, "quantity": outset.quantity}
    try:
        item = ledger_service.adjust_stock(db, outset.sku_id, outset.bin, outset.quantity)
        deleted["newStock"] = item.quantity
        audit_service.record(
            db,
            AuditAction.DELETE,
            AuditCollection.OUTSET,
            outset.id,
            {"skuId": outset.sku_id, "bin": outset.bin, "restored": outset.quantity, "newStock": item.quantity},
            user,
        )
        db.delete(outset)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted outset %s, restored %d to %s/%s", outset_id, deleted["quantity"], deleted["skuId"], deleted["bin"])
    return deleted


def delete_batch(db: Session, batch_id: str, user=None) -> dict:
    """Reverse a whole batch: restore every line and drop its outset rows."""
    outsets = db.query(Outset).filter(Outset.batch_id == batch_id).all()
    if not outsets:
        raise NotFoundError("Batch not found", batchId=batch_id)

    amounts: dict[tuple[str, str], int] = {}
    for o in outsets:
        amounts[(o.sku_id, o.bin)] = amounts.get((o.sku_id, o.bin), 0) + o.quantity

    try:
        _restore(db, amounts)
        db.query(Outset).filter(Outset.batch_id == batch_id).delete(synchronize_session=False)
        audit_service.record_many(
            db,
            [
                {
                    "action": AuditAction.BATCH_DELETE,
                    "collection": AuditCollection.OUTSET,
                    "document_id": o.id,
                    "changes": {"batchId": batch_id, "skuId": o.sku_id, "bin": o.bin, "restored": o.quantity},
                }
                for o in outsets
            ],
            user,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deleted batch %s (%d lines)", batch_id, len(outsets))
    return {
        "batchId": batch_id,
        "deletedCount": len(outsets),
        "restored": [{"skuId": s, "bin": b, "quantity": q} for (s, b), q in amounts.items()],
    }
