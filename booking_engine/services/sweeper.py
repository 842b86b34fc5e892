from __future__ import annotations

import logging

from booking_engine.services.clock import Clock
from booking_engine.services.locks import LockManager
from booking_engine.services.record_store import SLOT_LOCKS, RecordStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Marks active slot locks past their TTL as expired.

    Readers already ignore such locks; this pass only keeps the records tidy.
    Each transition goes through the lock manager so it never overwrites a
    release or conversion made after the stale locks were listed.
    """

    def __init__(self, store: RecordStore, *, clock: Clock, locks: LockManager) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks

    async def cleanup_expired_locks(self) -> int:
        now = self._clock.now()
        stale = await self._store.find_many(SLOT_LOCKS, {"status": "active", "expires_at": {"$lt": now}})
        expired = 0
        for record in stale:
            try:
                if await self._locks.expire_lock(record["id"]):
                    expired += 1
            except Exception:
                logger.exception("Failed to expire slot lock %s", record.get("id"))
        if expired:
            logger.info("Expired %s stale slot locks", expired)
        return expired
