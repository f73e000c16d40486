"""
livecheck — Verification State Store

Per-document map from statement index to its latest status record.
Records are replaced, never mutated in place, and are only removed in bulk.
"""

from __future__ import annotations

import structlog

from livecheck.primitives.common import monotonic_now
from livecheck.verification.types import StatusRecord, VerificationStatus

logger = structlog.get_logger().bind(system="livecheck.store")


class VerificationStateStore:
    """
    Status records for one document session.

    Every reset bumps a generation counter and stamps it on the records it
    resets. Tasks write back with the generation they were launched under;
    with `reject_stale` on, a write whose generation no longer matches the
    record is dropped.
    """

    def __init__(self, uri: str, reject_stale: bool = True) -> None:
        self._uri = uri
        self._reject_stale = reject_stale
        self._records: dict[int, StatusRecord] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, index: int) -> StatusRecord | None:
        return self._records.get(index)

    def records(self) -> list[StatusRecord]:
        return [self._records[i] for i in sorted(self._records)]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, index: object) -> bool:
        return index in self._records

    def reset_from(self, start: int, count: int) -> int:
        """
        Reset indices `start .. count-1` to pending; returns the new generation.

        Records below `start` are left untouched. Records at or past `count`
        belong to statements that no longer exist and are dropped. A reset
        from 0 replaces the whole record set.
        """
        self._generation += 1
        if start <= 0:
            self._records.clear()
        else:
            for index in [i for i in self._records if i >= count]:
                del self._records[index]

        now = monotonic_now()
        for index in range(max(start, 0), count):
            self._records[index] = StatusRecord(
                statement_index=index,
                status=VerificationStatus.PENDING,
                last_updated=now,
                generation=self._generation,
            )
        return self._generation

    def mark(self, index: int, status: VerificationStatus, generation: int) -> bool:
        """Record a status for `index`. Returns False if the write was rejected."""
        current = self._records.get(index)
        if current is None:
            logger.debug("status_write_without_record", uri=self._uri, index=index)
            return False
        if self._reject_stale and current.generation != generation:
            logger.debug(
                "stale_status_rejected",
                uri=self._uri,
                index=index,
                status=str(status),
                task_generation=generation,
                record_generation=current.generation,
            )
            return False

        self._records[index] = current.model_copy(
            update={"status": status, "last_updated": monotonic_now()},
        )
        return True

    def clear(self) -> None:
        self._records.clear()
