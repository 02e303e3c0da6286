# sharing/retention.py
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from utils import now_ms

from .errors import ConcurrencyBusyError, StorageError
from .locks import SessionLocks
from .models import SweepReport, UploadStatus
from .storage import ArtifactStore, ChunkStore, remove_tree

logger = logging.getLogger(__name__)


class RetentionManager:
    """Delete expired final directories and abandoned temp directories.

    Both sweeps are idempotent, and a failure on one directory is counted and
    logged without stopping the rest of the sweep.
    """

    def __init__(
        self,
        chunks: ChunkStore,
        artifacts: ArtifactStore,
        locks: SessionLocks,
        temp_stale_hours: float = 24.0,
        orphan_grace_seconds: float = 600.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.chunks = chunks
        self.artifacts = artifacts
        self.locks = locks
        self.temp_stale_ms = int(temp_stale_hours * 60 * 60 * 1000)
        self.orphan_grace_ms = int(orphan_grace_seconds * 1000)
        self.clock = clock

    def sweep(self) -> Dict[str, SweepReport]:
        return {"expired": self.sweep_expired(), "temp": self.sweep_temp()}

    def sweep_expired(self) -> SweepReport:
        report = SweepReport("expired")
        now = self.clock()
        for path in self.artifacts.sessions():
            file_id = path.name
            report.checked += 1
            try:
                try:
                    meta = self.artifacts.read_metadata(file_id)
                except StorageError:
                    logger.warning("unreadable metadata in %s, treating as corrupt", path)
                    meta = None
                if meta is None:
                    if self._assembly_in_progress(file_id):
                        continue
                    reason = "missing metadata"
                elif meta.is_expired(now):
                    reason = f"expired ({meta.file_name})"
                else:
                    continue
                if remove_tree(path):
                    report.removed += 1
                    report.removed_ids.append(file_id)
                    logger.info("removed %s: %s", file_id, reason)
            except Exception:
                report.failed += 1
                logger.exception("error cleaning final directory %s", file_id)
        self._log(report)
        return report

    def sweep_temp(self) -> SweepReport:
        report = SweepReport("temp")
        now = self.clock()
        for path in self.chunks.sessions():
            file_id = path.name
            report.checked += 1
            try:
                with self.locks.hold(file_id):
                    reason = self._temp_removal_reason(file_id, path, now)
                    if reason is None:
                        continue
                    if remove_tree(path):
                        report.removed += 1
                        report.removed_ids.append(file_id)
                        logger.info("removed temp %s: %s", file_id, reason)
            except ConcurrencyBusyError:
                logger.info("temp %s is busy, leaving it for the next sweep", file_id)
            except Exception:
                report.failed += 1
                logger.exception("error cleaning temp directory %s", file_id)
        self._log(report)
        return report

    def _temp_removal_reason(self, file_id, path, now) -> Optional[str]:
        try:
            dir_mtime = int(path.stat().st_mtime * 1000)
        except FileNotFoundError:
            return None
        try:
            meta = self.chunks.read_metadata(file_id)
        except StorageError:
            logger.warning("unreadable metadata in %s, treating as orphaned", path)
            meta = None
        if meta is None:
            # a first chunk is staged before its session record is written
            if now - dir_mtime > self.orphan_grace_ms:
                return "no metadata"
            return None
        if meta.status is UploadStatus.COMPLETED and self.artifacts.exists(file_id):
            return "leftover of completed upload"
        last_activity = max(meta.updated_at or meta.created_at, dir_mtime)
        if now - last_activity > self.temp_stale_ms:
            return f"abandoned in {meta.status.value}"
        return None

    def _assembly_in_progress(self, file_id) -> bool:
        try:
            meta = self.chunks.read_metadata(file_id)
        except StorageError:
            return False
        return meta is not None and meta.status is UploadStatus.ASSEMBLING

    def _log(self, report: SweepReport) -> None:
        logger.info(
            "%s sweep finished: checked=%d removed=%d failed=%d",
            report.name,
            report.checked,
            report.removed,
            report.failed,
        )


class CleanupScheduler:
    """Run ``task`` every ``interval`` seconds on an APScheduler background job.

    The owner starts and stops it; ``run_once`` is the on-demand path.
    """

    JOB_ID = "cleanup_sessions"

    def __init__(self, task: Callable[[], object], interval: float):
        self.task = task
        self.interval = interval
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self, run_immediately: bool = True) -> bool:
        if self.running or self.interval <= 0:
            return False
        scheduler = BackgroundScheduler(daemon=True)
        job_kwargs = {}
        if run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)
        scheduler.add_job(
            func=self.run_once,
            trigger="interval",
            seconds=self.interval,
            id=self.JOB_ID,
            name="Clean up expired and abandoned uploads",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_kwargs,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("cleanup scheduler started (every %ss)", self.interval)
        return True

    def stop(self, wait: bool = True) -> bool:
        if not self.running:
            return False
        self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("cleanup scheduler stopped")
        return True

    def run_once(self):
        try:
            return self.task()
        except Exception:
            logger.exception("cleanup task failed")
            return None
