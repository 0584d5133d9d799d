"""Shared handling for the two Excel import endpoints."""

import logging

from fastapi import UploadFile
from fastapi.responses import JSONResponse

from stocktrack.config import settings
from stocktrack.database import utcnow
from stocktrack.errors import ImportFileError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".xlsx", ".xls")


def read_upload(file: UploadFile | None) -> bytes:
    if file is None or not file.filename:
        raise ValidationError("No Excel file provided", details="Please upload an Excel file (.xlsx, .xls)")
    if not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise ValidationError(
            "Invalid file type",
            details="Please upload an Excel file (.xlsx or .xls)",
            received={"mimetype": file.content_type, "filename": file.filename},
        )
    max_size = settings.IMPORT_MAX_FILE_SIZE_MB * 1024 * 1024
    # never buffer more than one byte past the limit
    content = file.file.read(max_size + 1)
    if len(content) > max_size:
        raise ValidationError(
            "File too large",
            details=f"File size must be less than {settings.IMPORT_MAX_FILE_SIZE_MB}MB",
            received=f"more than {settings.IMPORT_MAX_FILE_SIZE_MB}MB",
        )
    return content


def _empty_results(error: ImportFileError) -> dict:
    return {
        "summary": {
            "totalRows": 0,
            "processedRows": 0,
            "successCount": 0,
            "errorCount": 1,
            "warningCount": 0,
            "successRate": "0%",
        },
        "createdBins": [],
        "errors": [{"row": 0, "message": error.message, "type": "CRITICAL", **error.extra}],
        "warnings": [],
        "itemsProcessed": [],
    }


def import_response(file: UploadFile, content: bytes, run) -> JSONResponse:
    """Run an import and map its outcome to 200 / 207 / 400."""
    logger.info("Processing file: %s (%.1fKB)", file.filename, len(content) / 1024)
    try:
        results = run(content)
    except ImportFileError as e:
        logger.warning("Import of %s failed: %s", file.filename, e.message)
        results = _empty_results(e)
        status, success, message = 400, False, "Import failed due to critical errors"
    else:
        summary = results["summary"]
        if summary["errorCount"] > 0 or results["errors"]:
            status, success, message = 207, True, "Import completed with some errors"
        elif results["warnings"]:
            status, success, message = 200, True, "Import completed with warnings"
        else:
            status, success, message = 200, True, "Import completed successfully"
        logger.info("Import completed - %d/%d rows successful", summary["successCount"], summary["totalRows"])

    return JSONResponse(
        status_code=status,
        content={
            "success": success,
            "message": message,
            "data": {
                "file": {"name": file.filename, "size": len(content), "processedAt": utcnow().isoformat() + "Z"},
                "results": results,
            },
        },
    )
