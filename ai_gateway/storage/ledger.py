"""
In-memory usage ledger.

Process-local, append-only store of usage records. Nothing here survives a
restart; a durable sink belongs at the integration boundary.
"""

import threading
from datetime import datetime
from typing import List, Optional

from .models import UsageRecord


class UsageLedger:
    """Append-only ledger of usage records.

    Appends are O(1). The only removal is the retention sweep, which drops
    whole records and never edits one in place.
    """

    def __init__(self):
        self._records: List[UsageRecord] = []
        self._lock = threading.Lock()

    def append(self, record: UsageRecord) -> None:
        """Append a single record to the ledger."""
        with self._lock:
            self._records.append(record)

    def query(
        self,
        tenant_id: Optional[str] = None,
        since: Optional[datetime] = None,
        vertical: Optional[str] = None,
        model: Optional[str] = None
    ) -> List[UsageRecord]:
        """Get records with optional filtering.

        Args:
            tenant_id: Optional filter for a specific tenant
            since: Optional lower bound (inclusive) on the record timestamp
            vertical: Optional filter for a specific vertical
            model: Optional filter for a specific model

        Returns:
            Matching records in insertion order
        """
        with self._lock:
            snapshot = list(self._records)

        return [
            record for record in snapshot
            if (tenant_id is None or record.tenant_id == tenant_id)
            and (since is None or record.timestamp >= since)
            and (vertical is None or record.vertical == vertical)
            and (model is None or record.model == model)
        ]

    def remove_older_than(self, cutoff: datetime) -> int:
        """Drop every record with a timestamp before the cutoff.

        Returns:
            Number of records removed
        """
        with self._lock:
            kept = [record for record in self._records if record.timestamp >= cutoff]
            removed = len(self._records) - len(kept)
            self._records = kept
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
