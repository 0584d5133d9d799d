import sqlite3

import pytest
from sqlalchemy import event

from stocktrack.errors import BatchValidationError, ConflictError, InsufficientStockError, NotFoundError, ValidationError
from stocktrack.models.audit_log import AuditLog
from stocktrack.models.outset import Outset
from stocktrack.services import ledger_service, outbound_service


@pytest.fixture
def stocked(db_session):
    ledger_service.adjust_stock(db_session, "SKU-A", "A1", 10)
    ledger_service.adjust_stock(db_session, "SKU-B", "B1", 3)
    db_session.commit()


def quantity(db, sku, bin):
    db.expire_all()
    return ledger_service.get_item(db, sku, bin).quantity


def test_single_outbound(db_session, user, stocked):
    outset, change = outbound_service.record_outbound(db_session, "sku-a", 4, " Acme ", "INV-1", "a1", user)

    assert change == {"skuId": "SKU-A", "oldQuantity": 10, "newQuantity": 6, "removed": 4}
    assert outset.customer_name == "Acme"
    assert outset.batch_id is None
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "STOCK_DECREASE").count() == 1


def test_single_outbound_insufficient_leaves_state(db_session, user, stocked):
    with pytest.raises(InsufficientStockError) as exc:
        outbound_service.record_outbound(db_session, "SKU-B", 4, "Acme", "INV-1", "B1", user)

    assert exc.value.available == 3
    assert exc.value.requested == 4
    assert quantity(db_session, "SKU-B", "B1") == 3
    assert db_session.query(Outset).count() == 0


def test_single_outbound_wrong_bin_lists_alternatives(db_session, user, stocked):
    with pytest.raises(NotFoundError) as exc:
        outbound_service.record_outbound(db_session, "SKU-A", 1, "Acme", "INV-1", "Z9", user)
    assert exc.value.extra["availableInBins"] == [{"bin": "A1", "quantity": 10}]


@pytest.mark.parametrize("field", ["customer_name", "invoice_no", "bin"])
def test_single_outbound_required_fields(db_session, user, stocked, field):
    kwargs = {"customer_name": "Acme", "invoice_no": "INV-1", "bin": "A1"}
    kwargs[field] = ""
    with pytest.raises(ValidationError):
        outbound_service.record_outbound(db_session, "SKU-A", 1, user=user, **kwargs)


def test_delete_outset_restores_stock(db_session, admin, stocked):
    outset, _ = outbound_service.record_outbound(db_session, "SKU-A", 4, "Acme", "INV-1", "A1", admin)

    deleted = outbound_service.delete_outset(db_session, outset.id, admin)

    assert deleted["newStock"] == 10
    assert quantity(db_session, "SKU-A", "A1") == 10
    assert db_session.query(Outset).count() == 0


def test_batch_ships_all_lines(db_session, user, stocked):
    result = outbound_service.record_outbound_batch(
        db_session,
        [
            {"skuId": "SKU-A", "bin": "A1", "quantity": 6},
            {"sku_id": "sku-b", "bin": "b1", "quantity": 3},
        ],
        "Acme",
        "INV-7",
        user,
    )

    batch_id = result["batchId"]
    assert batch_id.startswith("BATCH-")
    assert {o.batch_id for o in result["createdRecords"]} == {batch_id}
    assert quantity(db_session, "SKU-A", "A1") == 4
    assert quantity(db_session, "SKU-B", "B1") == 0
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "BATCH_STOCK_DECREASE").count() == 2


def test_batch_is_all_or_nothing(db_session, user, stocked):
    with pytest.raises(BatchValidationError) as exc:
        outbound_service.record_outbound_batch(
            db_session,
            [
                {"skuId": "SKU-A", "bin": "A1", "quantity": 5},
                {"skuId": "SKU-B", "bin": "B1", "quantity": 4},
                {"skuId": "SKU-C", "bin": "C1", "quantity": 1},
            ],
            "Acme",
            "INV-7",
            user,
        )

    errors = exc.value.errors
    assert [e["index"] for e in errors] == [1, 2]
    assert errors[0]["available"] == 3
    assert errors[0]["requested"] == 4
    assert quantity(db_session, "SKU-A", "A1") == 10
    assert quantity(db_session, "SKU-B", "B1") == 3
    assert db_session.query(Outset).count() == 0


def test_batch_duplicate_lines_are_summed(db_session, user, stocked):
    with pytest.raises(BatchValidationError):
        outbound_service.record_outbound_batch(
            db_session,
            [
                {"skuId": "SKU-B", "bin": "B1", "quantity": 2},
                {"skuId": "SKU-B", "bin": "B1", "quantity": 2},
            ],
            "Acme",
            "INV-7",
            user,
        )
    assert quantity(db_session, "SKU-B", "B1") == 3


def test_batch_requires_items(db_session, user):
    with pytest.raises(ValidationError):
        outbound_service.record_outbound_batch(db_session, [], "Acme", "INV-7", user)


@pytest.mark.parametrize("sane_multi_rowcount", [True, False])
def test_batch_rolls_back_when_stock_drops_underneath(engine, db_session, user, stocked, monkeypatch, sane_multi_rowcount):
    monkeypatch.setattr(engine.dialect, "supports_sane_multi_rowcount", sane_multi_rowcount)
    state = {"done": False}

    # Another client ships most of SKU-A after validation but before the decrement.
    @event.listens_for(engine, "before_cursor_execute")
    def ship_elsewhere(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("UPDATE inventories") and not state["done"]:
            state["done"] = True
            other = sqlite3.connect(engine.url.database)
            try:
                other.execute("UPDATE inventories SET quantity = 2 WHERE sku_id = 'SKU-A' AND bin = 'A1'")
                other.commit()
            finally:
                other.close()

    try:
        with pytest.raises(ConflictError):
            outbound_service.record_outbound_batch(
                db_session,
                [
                    {"skuId": "SKU-A", "bin": "A1", "quantity": 6},
                    {"skuId": "SKU-B", "bin": "B1", "quantity": 1},
                ],
                "Acme",
                "INV-8",
                user,
            )
    finally:
        event.remove(engine, "before_cursor_execute", ship_elsewhere)

    assert state["done"]
    assert quantity(db_session, "SKU-A", "A1") == 2
    assert quantity(db_session, "SKU-B", "B1") == 3
    assert db_session.query(Outset).count() == 0


def test_batch_rejects_fractional_quantity(db_session, user, stocked):
    with pytest.raises(BatchValidationError) as exc:
        outbound_service.record_outbound_batch(
            db_session,
            [{"skuId": "SKU-A", "bin": "A1", "quantity": 1.5}],
            "Acme",
            "INV-9",
            user,
        )
    assert exc.value.errors[0]["message"] == "Quantity must be a whole number"
    assert quantity(db_session, "SKU-A", "A1") == 10


def test_single_outbound_rejects_fractional_quantity(db_session, user, stocked):
    with pytest.raises(ValidationError):
        outbound_service.record_outbound(db_session, "SKU-A", 2.5, "Acme", "INV-1", "A1", user)
    assert quantity(db_session, "SKU-A", "A1") == 10
    assert db_session.query(Outset).count() == 0


def test_delete_batch_restores_every_line(db_session, admin, stocked):
    result = outbound_service.record_outbound_batch(
        db_session,
        [
            {"skuId": "SKU-A", "bin": "A1", "quantity": 6},
            {"skuId": "SKU-A", "bin": "A1", "quantity": 1},
            {"skuId": "SKU-B", "bin": "B1", "quantity": 3},
        ],
        "Acme",
        "INV-7",
        admin,
    )
    summary = outbound_service.get_batch_summary(db_session, result["batchId"])
    assert summary["totalItems"] == 3
    assert summary["totalQuantity"] == 10

    reversed_ = outbound_service.delete_batch(db_session, result["batchId"], admin)

    assert reversed_["deletedCount"] == 3
    assert quantity(db_session, "SKU-A", "A1") == 10
    assert quantity(db_session, "SKU-B", "B1") == 3
    assert db_session.query(Outset).count() == 0
    with pytest.raises(NotFoundError):
        outbound_service.get_batch_summary(db_session, result["batchId"])


def test_delete_batch_unknown(db_session, admin):
    with pytest.raises(NotFoundError):
        outbound_service.delete_batch(db_session, "BATCH-NOPE", admin)
