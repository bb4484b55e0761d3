"""
Memory Lane facade: capture, storage, retrieval and usage feedback
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from studycoach.core.models import Subject
from studycoach.memory.burnout import BurnoutMonitor
from studycoach.memory.catcher import MemoryCatcher
from studycoach.memory.models import (
    BurnoutLevel, EmotionRecord, LearningMemory, MemoryKind, RetrievedMemory
)
from studycoach.memory.pattern_cache import ReviewPatternCache
from studycoach.memory.retriever import MemoryRetriever
from studycoach.memory.store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryLane:

    def __init__(self, store: MemoryStore, retriever: Optional[MemoryRetriever] = None,
                 catcher: Optional[MemoryCatcher] = None,
                 pattern_cache: Optional[ReviewPatternCache] = None):
        self.store = store
        self.retriever = retriever or MemoryRetriever()
        self.catcher = catcher or MemoryCatcher()
        self.pattern_cache = pattern_cache or ReviewPatternCache()

    def extract_and_store(self, student_id: str, messages: List[Dict[str, str]],
                          current_subject: Optional[Subject] = None,
                          conversation_id: Optional[str] = None,
                          now: Optional[datetime] = None) -> List[LearningMemory]:
        memories = self.catcher.extract(student_id, messages, current_subject, conversation_id, now)
        for memory in memories:
            self.remember(memory)
        if memories:
            print(f"[MEMORY_LANE] Captured {len(memories)} memories for {student_id}: "
                  f"{[m.kind.value for m in memories]}")
        return memories

    def remember(self, memory: LearningMemory) -> None:
        self.store.append(memory)
        self.pattern_cache.on_memory_stored(memory)

    def retrieve(self, student_id: str, query: str, subject_filter: Optional[Subject] = None,
                 burnout_risk: BurnoutLevel = BurnoutLevel.LOW,
                 mastery: Optional[Dict[str, float]] = None,
                 now: Optional[datetime] = None) -> List[RetrievedMemory]:
        """Read-only: ranking inputs are not changed by retrieving"""
        return self.retriever.retrieve(
            query=query,
            memories=self.store.list_for_student(student_id),
            subject_filter=subject_filter,
            burnout_risk=burnout_risk,
            mastery=mastery,
            retrieval_counts=self.store.retrieval_counts(student_id),
            now=now,
        )

    def record_feedback(self, student_id: str, memory_ids: Iterable[str]) -> None:
        """Count memories that were actually injected into an agent prompt"""
        ids = list(memory_ids)
        if ids:
            self.store.increment_retrieval(student_id, ids)

    def memories(self, student_id: str) -> List[LearningMemory]:
        return self.store.list_for_student(student_id)

    def emotion_history(self, student_id: str, since: Optional[datetime] = None) -> List[EmotionRecord]:
        memories = sorted(self.store.list_for_student(student_id), key=lambda m: m.created_at)
        if since is not None:
            memories = [m for m in memories if m.created_at >= since]
        return BurnoutMonitor.emotion_records(memories)

    def review_patterns(self, student_id: str, subject: Subject) -> List[LearningMemory]:
        def load() -> List[LearningMemory]:
            return [
                m for m in self.store.list_for_student(student_id)
                if m.kind == MemoryKind.REVIEW_PATTERN and m.subject in (subject, Subject.GENERAL)
            ]
        return self.pattern_cache.get(student_id, subject, load)

    def prune(self, student_id: str, max_age_days: int, now: Optional[datetime] = None) -> int:
        return self.store.prune(student_id, now or datetime.now(), max_age_days)

    def export(self, student_id: str) -> List[dict]:
        return self.store.export(student_id)

    def import_records(self, student_id: str, records: List[dict]) -> int:
        added = self.store.import_records(student_id, records)
        self.pattern_cache.invalidate(student_id)
        logger.info(f"Imported {added} memories for {student_id}")
        return added
