"""Telemetry: append-only log of routing decisions."""

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Union

from ..models.routing_models import DecisionRecord

logger = logging.getLogger(__name__)


class DecisionLog:
    """
    Append-only sink for decision records.

    PATTERN: In-memory ring buffer, optionally mirrored to a JSONL file
    CRITICAL: Records are appended in completion order, never rewritten
    GOTCHA: File write failures are logged, they never fail a request
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        max_records: int = 1000,
    ):
        """
        Initialize decision log.

        Args:
            path: JSONL file receiving one record per line (memory only if None)
            max_records: Records kept in memory
        """
        self.path = Path(path) if path else None
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._records: Deque[DecisionRecord] = deque(maxlen=max_records)
        self.total_records = 0

        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, record: DecisionRecord) -> None:
        """Append a decision record."""
        with self._lock:
            self._records.append(record)
            self.total_records += 1
            if self.path is not None:
                self._write_line(record)

        self.logger.debug(
            f"Decision {record.decision_id}: {record.selected_model_id} ({record.reason})"
        )

    def _write_line(self, record: DecisionRecord) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(record.model_dump_json() + "\n")
        except OSError as e:
            self.logger.error(f"Failed to write decision log {self.path}: {e}")

    def recent(self, limit: int = 100) -> List[DecisionRecord]:
        """Most recent records, oldest first."""
        with self._lock:
            records = list(self._records)
        return records[-limit:]

    def find(self, decision_id: str) -> Optional[DecisionRecord]:
        with self._lock:
            for record in self._records:
                if record.decision_id == decision_id:
                    return record
        return None

    def load(self) -> List[DecisionRecord]:
        """
        Read every record back from the JSONL file.

        Returns:
            Records in file order (empty without a file)
        """
        if self.path is None or not self.path.exists():
            return []

        records = []
        with self.path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(DecisionRecord(**json.loads(line)))
                except (json.JSONDecodeError, ValueError) as e:
                    self.logger.warning(f"Skipping malformed record at line {line_no}: {e}")
        return records
