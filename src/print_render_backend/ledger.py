"""
CSV ledger of order values.

Each delivered project appends one row ``timestamp_iso,order_id,order_value``.
Appends are idempotent per order identifier so a redelivered webhook does not
count the same project twice. The running total is the sum of the value
column.
"""

from __future__ import annotations

import csv
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

from .utils import ensure_directory

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_PATH = Path("data/money.csv")


class MoneyLedger:
    """
    File-backed ledger with a running total.

    Thread Safety:
        Appends and resets are serialized with a lock so that the
        read-check-append sequence cannot interleave between two requests.
    """

    def __init__(self, path: Path = DEFAULT_LEDGER_PATH) -> None:
        self.path = path
        self._lock = Lock()

    def _order_ids(self) -> set[str]:
        if not self.path.exists():
            return set()
        with self.path.open("r", encoding="utf-8", newline="") as handle:
            return {row[1] for row in csv.reader(handle) if len(row) >= 2}

    def append(self, order_id: str, order_value: float) -> bool:
        """
        Record a value for ``order_id``.

        Returns:
            True if a row was written, False if the id already existed or the
            value was not a number
        """
        if isinstance(order_value, bool) or not isinstance(order_value, (int, float)) or math.isnan(order_value):
            logger.warning(f"append called with invalid order value: {order_value!r}")
            return False

        with self._lock:
            ensure_directory(self.path.parent)
            if str(order_id) in self._order_ids():
                logger.info(f"OrderId {order_id} already exists in ledger. Skipping append.")
                return False

            timestamp = datetime.now(timezone.utc).isoformat()
            with self.path.open("a", encoding="utf-8", newline="") as handle:
                csv.writer(handle, lineterminator="\n").writerow([timestamp, order_id, order_value])

        logger.info(f"Appended order value to ledger: {order_id} -> {order_value}")
        return True

    def total(self) -> float:
        if not self.path.exists():
            return 0.0

        total = 0.0
        with self.path.open("r", encoding="utf-8", newline="") as handle:
            for row in csv.reader(handle):
                if len(row) < 3:
                    continue
                try:
                    total += float(row[2])
                except ValueError:
                    logger.warning(f"Skipping invalid ledger line (non-numeric value): {','.join(row)}")
        return total

    def reset(self) -> None:
        with self._lock:
            ensure_directory(self.path.parent)
            self.path.write_text("", encoding="utf-8")
        logger.info("Ledger has been reset (file truncated).")
