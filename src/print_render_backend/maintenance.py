"""
Housekeeping for the output directory.

Merged PDFs stay downloadable for a limited number of days. A background
sweeper deletes older PDFs once a day, and the manual cleanup endpoint can
purge the whole directory, including workspaces left by a crashed process.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Event, Thread
from typing import Callable, Optional

from .utils import ensure_directory

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class SweepReport:
    deleted: int = 0
    errors: int = 0


@dataclass
class PurgeReport:
    files: SweepReport
    directories: SweepReport


def file_age_days(path: Path, now: Optional[float] = None) -> float:
    current = time.time() if now is None else now
    return (current - path.stat().st_mtime) / SECONDS_PER_DAY


def is_expired(path: Path, expiry_days: float, now: Optional[float] = None) -> bool:
    return file_age_days(path, now) > expiry_days


def sweep_expired_files(directory: Path, expiry_days: float, now: Optional[float] = None) -> SweepReport:
    """
    Delete ``*.pdf`` files in ``directory`` older than ``expiry_days``.

    Only the top level is swept; workspaces are cleaned up by the pipeline
    itself and by ``purge_directory``.
    """
    logger.info("Starting file cleanup...")
    report = SweepReport()
    ensure_directory(directory)

    for path in sorted(directory.iterdir()):
        if path.suffix != ".pdf" or not path.is_file():
            continue
        try:
            age = file_age_days(path, now)
            if age > expiry_days:
                path.unlink()
                report.deleted += 1
                logger.info(f"Deleted expired file: {path.name} ({age:.1f} days old)")
        except OSError as exc:
            report.errors += 1
            logger.warning(f"Error processing file {path.name}: {exc}")

    logger.info(f"File cleanup completed: {report.deleted} deleted, {report.errors} errors")
    return report


def purge_directory(directory: Path) -> PurgeReport:
    """Remove every file and subdirectory inside ``directory``."""
    logger.info(f"Manual cleanup requested for {directory}")
    report = PurgeReport(files=SweepReport(), directories=SweepReport())
    if not directory.exists():
        return report

    for path in sorted(directory.iterdir()):
        is_dir = path.is_dir() and not path.is_symlink()
        counter = report.directories if is_dir else report.files
        try:
            if is_dir:
                shutil.rmtree(path)
            else:
                path.unlink()
            counter.deleted += 1
            logger.info(f"Deleted {'directory' if is_dir else 'file'}: {path.name}")
        except OSError as exc:
            counter.errors += 1
            logger.warning(f"Error deleting {path.name}: {exc}")

    return report


class ExpirySweeper:
    """
    Runs ``sweep_expired_files`` immediately and then every ``interval_seconds``.

    The loop lives in a daemon thread and waits on an Event, so ``stop`` wakes
    it without waiting for the interval to elapse.
    """

    def __init__(
        self,
        directory: Path,
        expiry_days: float,
        interval_seconds: float = SECONDS_PER_DAY,
        sweep: Callable[[Path, float], SweepReport] = sweep_expired_files,
    ) -> None:
        self.directory = directory
        self.expiry_days = expiry_days
        self.interval_seconds = interval_seconds
        self._sweep = sweep
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def _run(self) -> None:
        while True:
            try:
                self._sweep(self.directory, self.expiry_days)
            except Exception:  # noqa: BLE001
                logger.exception("Error during file cleanup")
            if self._stop.wait(self.interval_seconds):
                return

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info(
            f"File cleanup scheduler started (runs every {self.interval_seconds / 3600:g} hours, "
            f"files expire after {self.expiry_days:g} days)"
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
