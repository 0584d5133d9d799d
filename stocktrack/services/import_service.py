"""Excel bulk import of inventory balances and inbound receipts.

The first worksheet is read with openpyxl. Columns are located by keyword in
the header row, rows are handed out in fixed-size batches to a bounded thread
pool, and every row runs in its own database session so one bad row never
affects another.
"""

import io
import logging
import math
import re
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor, wait

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from stocktrack.config import settings
from stocktrack.errors import ImportFileError
from stocktrack.models.audit_log import AuditAction, AuditCollection
from stocktrack.models.inset import Inset
from stocktrack.services import audit_service, ledger_service, metadata_service
from stocktrack.services.audit_service import actor_of

logger = logging.getLogger(__name__)

QUANTITY_KEYWORDS = ("balance", "qty", "quantity")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


class RowError(Exception):
    """A single spreadsheet row that cannot be imported."""


def parse_quantity(text) -> int:
    """Strip everything but digits, '.', '-', then read the leading number; floor; clamp at 0.

    ``"10-20"`` reads as 10 and ``"12.5.3"`` as 12. Garbage becomes 0.
    """
    cleaned = _NON_NUMERIC.sub("", str(text if text is not None else ""))
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0
    return max(0, math.floor(float(match.group())))


def parse_bins(text: str) -> list[str]:
    return [b.strip().upper() for b in (text or "").split(",") if b.strip()]


def split_quantity(total: int, parts: int) -> list[int]:
    """Even split; the first ``total % parts`` bins receive one extra unit."""
    base, remainder = divmod(total, parts)
    return [base + (1 if i < remainder else 0) for i in range(parts)]


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_first_sheet(content: bytes) -> list[list[str]]:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ImportFileError(f"Unable to read Excel file: {e}")
    try:
        ws = wb.worksheets[0]
        return [[_cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def map_headers(header_row: list[str], bin_label: str = "BIN NO.") -> dict[str, int]:
    headers: dict[str, int] = {}
    for index, header in enumerate(header_row):
        clean = (header or "").strip().lower()
        if not clean:
            continue
        if "sku" in clean:
            headers["sku"] = index
        elif "bin" in clean:
            headers["bin"] = index
        elif any(k in clean for k in QUANTITY_KEYWORDS):
            headers["quantity"] = index

    missing = []
    if "sku" not in headers:
        missing.append("SKU")
    if "bin" not in headers:
        missing.append(bin_label)
    if "quantity" not in headers:
        missing.append("BALANCE/QUANTITY")
    if missing:
        found = ", ".join(h for h in header_row if h)
        raise ImportFileError(
            f"Missing required headers: {', '.join(missing)}. Found headers: {found}",
            missingHeaders=missing,
        )
    return headers


def _cell(row: list[str], index: int) -> str:
    return row[index].strip() if index < len(row) and row[index] else ""


class ExcelImportService:
    def __init__(self, session_factory, user=None, max_workers: int | None = None, preview_limit: int | None = None):
        self.session_factory = session_factory
        self.actor = actor_of(user)
        self.max_workers = max_workers or settings.IMPORT_MAX_WORKERS
        self.preview_limit = preview_limit if preview_limit is not None else settings.IMPORT_PREVIEW_LIMIT
        self._lock = threading.Lock()
        self._key_locks: dict[tuple[str, str], threading.Lock] = {}
        self.results = {
            "totalRows": 0,
            "processedRows": 0,
            "successCount": 0,
            "errorCount": 0,
            "errors": [],
            "warnings": [],
            "createdBins": [],
            "itemsProcessed": [],
        }

    # --- entry points ---

    def import_inventory(self, content: bytes, batch_size: int | None = None) -> dict:
        """Seed balances; a row's quantity is split across its comma-separated bins."""
        return self._run(content, batch_size or settings.IMPORT_BATCH_SIZE, self._process_inventory_row, "BIN NO.")

    def import_inbound(self, content: bytes, batch_size: int | None = None) -> dict:
        """Record inbound receipts, one bin per row."""
        return self._run(
            content,
            batch_size or settings.INBOUND_IMPORT_BATCH_SIZE,
            self._process_inbound_row,
            "BIN NO./BIN LOCATION",
        )

    # --- driver ---

    def _run(self, content: bytes, batch_size: int, handler, bin_label: str) -> dict:
        rows = read_first_sheet(content)
        if len(rows) < 2:
            raise ImportFileError("Excel file must contain at least a header row and one data row")
        headers = map_headers(rows[0], bin_label)

        data_rows = [(row_num, row) for row_num, row in enumerate(rows[1:], start=2) if any(row)]
        self.results["totalRows"] = len(data_rows)
        logger.info("Processing %d rows from Excel file", len(data_rows))

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for start in range(0, len(data_rows), batch_size):
                batch = data_rows[start:start + batch_size]
                futures = {pool.submit(handler, row, headers, row_num): row_num for row_num, row in batch}
                wait(futures)
                for future, row_num in futures.items():
                    exc = future.exception()
                    if exc is not None:
                        self._row_failed(row_num, str(exc))

        return self._finish()

    def _finish(self) -> dict:
        r = self.results
        r["errors"].sort(key=lambda e: e["row"])
        r["warnings"].sort(key=lambda w: w["row"])
        r["itemsProcessed"].sort(key=lambda i: i["row"])
        total = r["totalRows"]
        success_rate = f"{r['successCount'] / total * 100:.1f}%" if total else "0%"
        logger.info(
            "Import summary: total=%d processed=%d success=%d errors=%d warnings=%d rate=%s bins_created=%d",
            total,
            r["processedRows"],
            r["successCount"],
            r["errorCount"],
            len(r["warnings"]),
            success_rate,
            len(r["createdBins"]),
        )
        return {
            "summary": {
                "totalRows": total,
                "processedRows": r["processedRows"],
                "successCount": r["successCount"],
                "errorCount": r["errorCount"],
                "warningCount": len(r["warnings"]),
                "successRate": success_rate,
            },
            "createdBins": list(r["createdBins"]),
            "errors": r["errors"],
            "warnings": r["warnings"],
            "itemsProcessed": r["itemsProcessed"][: self.preview_limit],
        }

    # --- shared bookkeeping ---

    def _row_failed(self, row_num: int, message: str, row: list[str] | None = None) -> None:
        logger.warning("Row %d failed: %s", row_num, message)
        with self._lock:
            self.results["errorCount"] += 1
            self.results["processedRows"] += 1
            error = {"row": row_num, "message": message, "type": "ROW_ERROR"}
            if row is not None:
                error["data"] = row
            self.results["errors"].append(error)

    def _bin_created(self, name: str) -> None:
        with self._lock:
            if name not in self.results["createdBins"]:
                self.results["createdBins"].append(name)
                logger.info("Auto-created bin: %s", name)

    def _key_lock(self, key: tuple[str, str]) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def _read_row(self, row: list[str], headers: dict[str, int], bin_label: str, qty_label: str):
        sku = _cell(row, headers["sku"])
        bin_text = _cell(row, headers["bin"])
        qty_text = _cell(row, headers["quantity"])
        if not sku:
            raise RowError("SKU is required")
        if not bin_text:
            raise RowError(f"{bin_label} is required")
        if not qty_text:
            raise RowError(f"{qty_label} is required")
        quantity = parse_quantity(qty_text)
        if quantity <= 0:
            raise RowError(f"Invalid quantity: {qty_text}")
        return ledger_service.normalize_sku(sku), bin_text, quantity

    # --- inventory rows ---

    def _process_inventory_row(self, row: list[str], headers: dict[str, int], row_num: int) -> None:
        try:
            sku, bin_text, total = self._read_row(row, headers, "BIN NO.", "BALANCE/QUANTITY")
            bins = parse_bins(bin_text)
            if not bins:
                raise RowError(f"No valid bins found in: {bin_text}")
        except RowError as e:
            self._row_failed(row_num, str(e), row)
            return

        details = []
        for bin, quantity in zip(bins, split_quantity(total, len(bins))):
            if quantity <= 0:
                details.append({"bin": bin, "quantity": 0, "action": "SKIPPED"})
                continue
            db = self.session_factory()
            try:
                created = metadata_service.ensure_bin(db, bin, self.actor["id"])
                item = ledger_service.adjust_stock(db, sku, bin, quantity)
                audit_service.record(
                    db,
                    AuditAction.STOCK_INCREASE,
                    AuditCollection.INVENTORY,
                    item.id,
                    {"sku": sku, "bin": bin, "quantity": quantity, "source": "Excel Import"},
                    self.actor,
                )
                db.commit()
                new_total = item.quantity
                if created:
                    self._bin_created(bin)
                details.append({"bin": bin, "quantity": quantity, "action": "ADDED", "newTotal": new_total})
            except Exception as e:
                db.rollback()
                logger.warning("Row %d bin %s failed: %s", row_num, bin, e)
                details.append({"bin": bin, "quantity": quantity, "action": "ERROR", "error": str(e)})
                with self._lock:
                    self.results["errors"].append({
                        "row": row_num,
                        "sku": sku,
                        "bin": bin,
                        "message": f"Bin processing failed: {e}",
                        "type": "BIN_ERROR",
                    })
            finally:
                db.close()

        successful = sum(1 for d in details if d["action"] == "ADDED")
        with self._lock:
            self.results["processedRows"] += 1
            if successful > 0:
                self.results["successCount"] += 1
                self.results["itemsProcessed"].append({
                    "row": row_num,
                    "sku": sku,
                    "totalBins": len(bins),
                    "successfulBins": successful,
                    "totalQuantity": total,
                    "details": details,
                })
            else:
                self.results["errorCount"] += 1
            if successful < len(bins):
                self.results["warnings"].append({
                    "row": row_num,
                    "sku": sku,
                    "message": f"Only {successful}/{len(bins)} bins processed successfully",
                    "type": "PARTIAL_SUCCESS",
                })

    # --- inbound rows ---

    def _process_inbound_row(self, row: list[str], headers: dict[str, int], row_num: int) -> None:
        try:
            sku, bin_text, quantity = self._read_row(row, headers, "BIN LOCATION", "QUANTITY")
            bins = parse_bins(bin_text)
            if len(bins) != 1:
                raise RowError(f"Exactly one bin is expected per inbound row, got: {bin_text}")
            bin = bins[0]
        except RowError as e:
            self._row_failed(row_num, str(e), row)
            return

        db = self.session_factory()
        try:
            with self._key_lock((sku, bin)):
                created = metadata_service.ensure_bin(db, bin, self.actor["id"])
                item = ledger_service.adjust_stock(db, sku, bin, quantity)
                inset = (
                    db.query(Inset)
                    .filter(Inset.sku_id == sku, Inset.bin == bin, Inset.source == "excel")
                    .first()
                )
                if inset:
                    inset.quantity += quantity
                else:
                    inset = Inset(
                        sku_id=sku,
                        bin=bin,
                        quantity=quantity,
                        source="excel",
                        user_id=self.actor["id"],
                        user_name=self.actor["name"] or "Excel Import",
                    )
                    db.add(inset)
                db.flush()
                audit_service.record(
                    db,
                    AuditAction.INBOUND_CREATED,
                    AuditCollection.INSET,
                    inset.id,
                    {"sku": sku, "bin": bin, "quantity": quantity, "source": "Excel Import"},
                    self.actor,
                )
                db.commit()
                record_total = inset.quantity
                stock = item.quantity
        except Exception as e:
            db.rollback()
            self._row_failed(row_num, str(e), row)
            return
        finally:
            db.close()

        if created:
            self._bin_created(bin)
        with self._lock:
            self.results["successCount"] += 1
            self.results["processedRows"] += 1
            self.results["itemsProcessed"].append({
                "row": row_num,
                "sku": sku,
                "bin": bin,
                "totalBins": 1,
                "successfulBins": 1,
                "totalQuantity": quantity,
                "recordQuantity": record_total,
                "newStock": stock,
                "status": "SUCCESS",
            })
