"""
Subject-keyed cache of review-pattern memories.

Staleness policy: an entry lives for `ttl_seconds`, and is dropped at once
when a REVIEW_PATTERN memory for the same (student, subject) is stored.
A GENERAL pattern applies to every subject, so it drops all of the
student's entries.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from studycoach.core.models import Subject
from studycoach.memory.models import LearningMemory, MemoryKind

CacheKey = Tuple[str, Subject]


class ReviewPatternCache:

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[CacheKey, Tuple[float, List[LearningMemory]]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, student_id: str, subject: Subject,
            loader: Callable[[], List[LearningMemory]]) -> List[LearningMemory]:
        key = (student_id, subject)
        entry = self._entries.get(key)
        now = self.clock()
        if entry is not None and now - entry[0] < self.ttl_seconds:
            self.hits += 1
            return list(entry[1])

        self.misses += 1
        patterns = loader()
        self._entries[key] = (now, list(patterns))
        return list(patterns)

    def invalidate(self, student_id: str, subject: Optional[Subject] = None) -> None:
        if subject is None or subject == Subject.GENERAL:
            for key in [k for k in self._entries if k[0] == student_id]:
                del self._entries[key]
            return
        self._entries.pop((student_id, subject), None)

    def on_memory_stored(self, memory: LearningMemory) -> None:
        if memory.kind == MemoryKind.REVIEW_PATTERN:
            self.invalidate(memory.student_id, memory.subject)

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "entries": len(self._entries)}
