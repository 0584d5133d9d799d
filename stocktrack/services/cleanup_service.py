"""Periodic removal of zero-stock ledger records that have gone stale."""

import logging
import threading
import time
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from stocktrack.config import settings
from stocktrack.database import utcnow
from stocktrack.models.cleanup_log import CleanupLog, CleanupLogItem, CleanupStatus
from stocktrack.models.inventory import InventoryItem

logger = logging.getLogger(__name__)

RECENT_CLEANUPS_LIMIT = 5


def cleanup_log_to_dict(log: CleanupLog) -> dict:
    return {
        "id": log.id,
        "cleanupDate": log.cleanup_date,
        "itemsRemoved": log.items_removed,
        "actualItemsRemoved": log.actual_items_removed,
        "status": log.status,
        "error": log.error,
        "executionTimeMs": log.execution_time_ms,
        "removedItems": [
            {
                "skuId": i.sku_id,
                "bin": i.bin,
                "lastUpdated": i.last_updated,
                "daysInactive": i.days_inactive,
            }
            for i in log.removed_items
        ],
    }


class CleanupScheduler:
    """Sweeps once on start, then every ``interval_seconds`` on a daemon timer.

    Only records with quantity 0 whose ``last_updated`` is older than the
    retention window are removed. Each sweep opens its own session.
    """

    def __init__(
        self,
        session_factory,
        interval_seconds: float | None = None,
        retention_days: int | None = None,
        clock=utcnow,
        timer_factory=threading.Timer,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.CLEANUP_INTERVAL_HOURS * 3600
        self.retention_days = retention_days if retention_days is not None else settings.CLEANUP_RETENTION_DAYS
        self.clock = clock
        self.timer_factory = timer_factory
        self.is_running = False
        self._timer = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                logger.info("Cleanup scheduler is already running")
                return
            self.is_running = True
        logger.info("Starting inventory cleanup scheduler (every %ss)", self.interval_seconds)
        self.sweep()
        with self._lock:
            if self.is_running:
                self._schedule()

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.is_running = False
        logger.info("Cleanup scheduler stopped")

    def _schedule(self) -> None:
        timer = self.timer_factory(self.interval_seconds, self._tick)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _tick(self) -> None:
        if not self.is_running:
            return
        self.sweep()
        with self._lock:
            if self.is_running:
                self._schedule()

    def cutoff(self):
        return self.clock() - timedelta(days=self.retention_days)

    def sweep(self) -> dict | None:
        """Remove stale zero-stock records. Never raises; failures are logged and recorded."""
        started = time.monotonic()
        now = self.clock()
        cutoff = now - timedelta(days=self.retention_days)
        db = self.session_factory()
        try:
            candidates = (
                db.query(InventoryItem)
                .filter(InventoryItem.quantity == 0, InventoryItem.last_updated < cutoff)
                .all()
            )
            if not candidates:
                logger.info("No zero-stock items older than %d days", self.retention_days)
                return None

            log = CleanupLog(
                cleanup_date=now,
                items_removed=len(candidates),
                status=CleanupStatus.PENDING.value,
                removed_items=[
                    CleanupLogItem(
                        sku_id=item.sku_id,
                        bin=item.bin,
                        last_updated=item.last_updated,
                        days_inactive=(now - item.last_updated).days,
                    )
                    for item in candidates
                ],
            )
            # Re-check the guards in the DELETE itself; a record restocked since the read survives.
            deleted = (
                db.query(InventoryItem)
                .filter(
                    InventoryItem.id.in_([item.id for item in candidates]),
                    InventoryItem.quantity == 0,
                    InventoryItem.last_updated < cutoff,
                )
                .delete(synchronize_session=False)
            )
            log.actual_items_removed = deleted
            log.status = CleanupStatus.COMPLETED.value
            log.execution_time_ms = int((time.monotonic() - started) * 1000)
            db.add(log)
            db.commit()
            db.refresh(log)
            for entry in log.removed_items:
                logger.info("Removed %s (bin %s), inactive for %d days", entry.sku_id, entry.bin, entry.days_inactive)
            logger.info("Cleanup removed %d zero-stock items", deleted)
            return cleanup_log_to_dict(log)
        except Exception as e:
            db.rollback()
            logger.exception("Cleanup sweep failed")
            return self._record_failure(db, now, e, started)
        finally:
            db.close()

    def _record_failure(self, db, now, error: Exception, started: float) -> dict | None:
        try:
            log = CleanupLog(
                cleanup_date=now,
                items_removed=0,
                actual_items_removed=0,
                status=CleanupStatus.FAILED.value,
                error=str(error),
                execution_time_ms=int((time.monotonic() - started) * 1000),
            )
            db.add(log)
            db.commit()
            db.refresh(log)
            return cleanup_log_to_dict(log)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to record cleanup failure")
            return None

    def run_manual(self) -> dict | None:
        logger.info("Manual cleanup triggered")
        return self.sweep()

    def get_stats(self) -> dict:
        cutoff = self.cutoff()
        db = self.session_factory()
        try:
            total_zero = db.query(InventoryItem).filter(InventoryItem.quantity == 0).count()
            eligible = (
                db.query(InventoryItem)
                .filter(InventoryItem.quantity == 0, InventoryItem.last_updated < cutoff)
                .count()
            )
            recent = (
                db.query(CleanupLog)
                .filter(CleanupLog.cleanup_date >= cutoff)
                .order_by(CleanupLog.cleanup_date.desc())
                .limit(RECENT_CLEANUPS_LIMIT)
                .all()
            )
            return {
                "totalZeroStock": total_zero,
                "eligibleForCleanup": eligible,
                "recentCleanups": [cleanup_log_to_dict(log) for log in recent],
                "serviceRunning": self.is_running,
            }
        finally:
            db.close()
