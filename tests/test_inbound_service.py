import pytest

from stocktrack.errors import NotFoundError, ValidationError
from stocktrack.models.audit_log import AuditLog
from stocktrack.models.inset import Inset
from stocktrack.models.inventory import InventoryItem
from stocktrack.services import inbound_service, ledger_service, outbound_service


def test_inbound_normalises_and_increments(db_session, user):
    inset, item = inbound_service.record_inbound(db_session, " abc-1 ", "a1", 5, user, order_no="PO-9")

    assert inset.sku_id == "ABC-1"
    assert inset.bin == "A1"
    assert inset.source == "manual"
    assert inset.order_no == "PO-9"
    assert inset.user_name == "Clerk"
    assert item.quantity == 5

    audit = db_session.query(AuditLog).one()
    assert audit.action_type == "CREATE"
    assert audit.collection_name == "Inset"
    assert audit.document_id == inset.id


def test_repeat_inbound_accumulates(db_session, user):
    inbound_service.record_inbound(db_session, "ABC-1", "A1", 5, user)
    _, item = inbound_service.record_inbound(db_session, "abc-1", "A1", 7, user)

    assert item.quantity == 12
    assert db_session.query(Inset).count() == 2
    assert db_session.query(InventoryItem).count() == 1


@pytest.mark.parametrize("quantity", [0, -3, "x", None, 2.7, "2.7"])
def test_invalid_quantity_persists_nothing(db_session, user, quantity):
    with pytest.raises(ValidationError):
        inbound_service.record_inbound(db_session, "ABC-1", "A1", quantity, user)
    assert db_session.query(Inset).count() == 0
    assert db_session.query(InventoryItem).count() == 0


def test_missing_bin(db_session, user):
    with pytest.raises(ValidationError):
        inbound_service.record_inbound(db_session, "ABC-1", "", 5, user)


def test_in_then_out_leaves_zero_record(db_session, user):
    inbound_service.record_inbound(db_session, "ABC-1", "A1", 5, user)
    outbound_service.record_outbound(db_session, "ABC-1", 5, "Acme", "INV-1", "A1", user)

    item = ledger_service.get_item(db_session, "ABC-1", "A1")
    assert item is not None
    assert item.quantity == 0


def test_get_inset(db_session, user):
    inset, _ = inbound_service.record_inbound(db_session, "ABC-1", "A1", 5, user)
    assert inbound_service.get_inset(db_session, inset.id).quantity == 5
    with pytest.raises(NotFoundError):
        inbound_service.get_inset(db_session, "missing")
