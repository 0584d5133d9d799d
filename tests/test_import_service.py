import pytest

from conftest import workbook_bytes
from stocktrack.errors import ImportFileError
from stocktrack.models.audit_log import AuditLog
from stocktrack.models.inset import Inset
from stocktrack.models.inventory import InventoryItem
from stocktrack.models.metadata import Bin
from stocktrack.services import ledger_service
from stocktrack.services.import_service import ExcelImportService, parse_bins, parse_quantity, split_quantity


@pytest.mark.parametrize(
    "text, expected",
    [
        ("10", 10), ("1,250 pcs", 1250), ("7.9", 7), ("-4", 0), ("abc", 0), ("", 0), (None, 0),
        ("10-20", 10), ("5-", 5), ("12.5.3", 12), ("3 - 4", 3), (".5", 0), ("--5", 0),
    ],
)
def test_parse_quantity(text, expected):
    assert parse_quantity(text) == expected


def test_parse_bins():
    assert parse_bins(" a1, ,b2 ,c3,") == ["A1", "B2", "C3"]
    assert parse_bins("") == []


def test_split_quantity():
    assert split_quantity(100, 3) == [34, 33, 33]
    assert split_quantity(10, 2) == [5, 5]
    assert split_quantity(2, 3) == [1, 1, 0]


def service(session_factory, user=None):
    return ExcelImportService(session_factory, user=user, max_workers=1)


def test_inventory_import_splits_across_bins(session_factory, db_session, user):
    content = workbook_bytes([
        ["SKU", "BIN NO.", "SUM OF BALANCE"],
        ["SKU1", "A1,A2", 10],
    ])

    results = service(session_factory, user).import_inventory(content)

    assert results["summary"]["successCount"] == 1
    assert results["summary"]["errorCount"] == 0
    assert results["summary"]["successRate"] == "100.0%"
    assert sorted(results["createdBins"]) == ["A1", "A2"]
    assert ledger_service.get_item(db_session, "SKU1", "A1").quantity == 5
    assert ledger_service.get_item(db_session, "SKU1", "A2").quantity == 5
    assert db_session.query(Bin).count() == 2
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "STOCK_INCREASE").count() == 2


def test_inventory_import_uneven_split(session_factory, db_session):
    content = workbook_bytes([
        ["Sku Code", "Bin", "Qty"],
        ["SKU2", "A, B, C", 100],
    ])

    service(session_factory).import_inventory(content)

    assert [ledger_service.get_item(db_session, "SKU2", b).quantity for b in "ABC"] == [34, 33, 33]


def test_inventory_import_isolates_bad_rows(session_factory, db_session):
    content = workbook_bytes([
        ["SKU", "BIN NO.", "BALANCE"],
        ["SKU1", "A1", 4],
        ["SKU2", "A1", "abc"],
        [None, None, None],
        ["", "A1", 3],
        ["SKU3", "A1", 2],
    ])

    results = service(session_factory).import_inventory(content)

    assert results["summary"]["totalRows"] == 4
    assert results["summary"]["successCount"] == 2
    assert results["summary"]["errorCount"] == 2
    assert results["summary"]["successRate"] == "50.0%"
    rows = {e["row"]: e for e in results["errors"]}
    assert rows[3]["message"] == "Invalid quantity: abc"
    assert rows[3]["type"] == "ROW_ERROR"
    assert rows[5]["message"] == "SKU is required"
    assert db_session.query(InventoryItem).count() == 2


def test_inventory_import_partial_bins_warn(session_factory, db_session):
    content = workbook_bytes([
        ["SKU", "BIN NO.", "BALANCE"],
        ["SKU1", "A1,BAD/BIN", 10],
    ])

    results = service(session_factory).import_inventory(content)

    assert results["summary"]["successCount"] == 1
    assert results["warnings"][0]["type"] == "PARTIAL_SUCCESS"
    assert results["errors"][0]["type"] == "BIN_ERROR"
    assert ledger_service.get_item(db_session, "SKU1", "A1").quantity == 5
    assert ledger_service.get_item(db_session, "SKU1", "BAD/BIN") is None


def test_missing_headers_fail_the_file(session_factory):
    content = workbook_bytes([["SKU", "Description"], ["SKU1", "thing"]])

    with pytest.raises(ImportFileError) as exc:
        service(session_factory).import_inventory(content)
    assert "BIN NO." in exc.value.message
    assert "BALANCE/QUANTITY" in exc.value.message
    assert "Description" in exc.value.message


def test_header_only_file(session_factory):
    with pytest.raises(ImportFileError):
        service(session_factory).import_inventory(workbook_bytes([["SKU", "BIN", "QTY"]]))


def test_unreadable_file(session_factory):
    with pytest.raises(ImportFileError):
        service(session_factory).import_inventory(b"not a workbook")


def test_preview_is_capped(session_factory):
    rows = [["SKU", "BIN", "QTY"]] + [[f"SKU{i}", "A1", 1] for i in range(5)]
    svc = ExcelImportService(session_factory, max_workers=1, preview_limit=2)

    results = svc.import_inventory(workbook_bytes(rows), batch_size=2)

    assert results["summary"]["successCount"] == 5
    assert len(results["itemsProcessed"]) == 2


def test_inbound_import_merges_excel_receipts(session_factory, db_session, user):
    content = workbook_bytes([
        ["SKU", "BIN LOCATION", "QUANTITY"],
        ["sku1", "a1", 4],
        ["SKU1", "A1", 6],
        ["SKU2", "B7", 2],
    ])

    results = service(session_factory, user).import_inbound(content)

    assert results["summary"]["successCount"] == 3
    assert results["createdBins"] == ["A1", "B7"]
    insets = {(i.sku_id, i.bin): i for i in db_session.query(Inset).all()}
    assert insets[("SKU1", "A1")].quantity == 10
    assert insets[("SKU1", "A1")].source == "excel"
    assert ledger_service.get_item(db_session, "SKU1", "A1").quantity == 10
    assert ledger_service.get_item(db_session, "SKU2", "B7").quantity == 2
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "INBOUND_CREATED").count() == 3


def test_inbound_import_rejects_multiple_bins(session_factory, db_session):
    content = workbook_bytes([
        ["SKU", "BIN", "QTY"],
        ["SKU1", "A1,A2", 4],
    ])

    results = service(session_factory).import_inbound(content)

    assert results["summary"]["errorCount"] == 1
    assert results["errors"][0]["row"] == 2
    assert db_session.query(Inset).count() == 0


def test_inbound_import_with_several_workers_merges_one_key(session_factory, db_session):
    rows = [["SKU", "BIN LOCATION", "QUANTITY"]]
    rows += [["SKU-M", "M1", 2] for _ in range(12)]
    rows += [["SKU-N", "N1", 3] for _ in range(6)]

    svc = ExcelImportService(session_factory, max_workers=4)
    results = svc.import_inbound(workbook_bytes(rows), batch_size=6)

    assert results["summary"]["successCount"] == 18
    assert results["summary"]["errorCount"] == 0
    assert sorted(results["createdBins"]) == ["M1", "N1"]
    assert ledger_service.get_item(db_session, "SKU-M", "M1").quantity == 24
    assert ledger_service.get_item(db_session, "SKU-N", "N1").quantity == 18
    insets = db_session.query(Inset).filter(Inset.sku_id == "SKU-M").all()
    assert len(insets) == 1
    assert insets[0].quantity == 24
    assert db_session.query(Bin).count() == 2


def test_inventory_import_with_several_workers_accumulates(session_factory, db_session):
    rows = [["SKU", "BIN NO.", "SUM OF BALANCE"]] + [["SKU-P", "P1,P2", 10] for _ in range(10)]

    results = ExcelImportService(session_factory, max_workers=4).import_inventory(workbook_bytes(rows))

    assert results["summary"]["successCount"] == 10
    assert results["warnings"] == []
    assert ledger_service.get_item(db_session, "SKU-P", "P1").quantity == 50
    assert ledger_service.get_item(db_session, "SKU-P", "P2").quantity == 50
    assert db_session.query(InventoryItem).filter(InventoryItem.sku_id == "SKU-P").count() == 2
