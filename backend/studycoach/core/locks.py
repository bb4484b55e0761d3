"""
Per-student write serialisation.
Mutations for one student (quest toggles, reschedule application, review
recording) run one at a time; different students never contend.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class StudentLocks:

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, student_id: str) -> asyncio.Lock:
        lock = self._locks.get(student_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[student_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, student_id: str):
        async with self.lock_for(student_id):
            yield

    def is_locked(self, student_id: str) -> bool:
        lock = self._locks.get(student_id)
        return bool(lock and lock.locked())
