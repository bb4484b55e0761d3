"""
Append-only memory log per student, plus retrieval counters
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List

from studycoach.core.storage import Repository
from studycoach.memory.models import LearningMemory

logger = logging.getLogger(__name__)


class MemoryStore:
    """
    Stores LearningMemory records under ``memory:{student_id}``.
    Records are never edited; the only removals are age-based pruning and
    the per-student cap, both of which spare high-importance kinds first.
    """

    def __init__(self, repository: Repository, max_per_student: int = 1000):
        self.repo = repository
        self.max_per_student = max_per_student

    def append(self, memory: LearningMemory) -> None:
        records = self.repo.get(f"memory:{memory.student_id}") or []
        if any(r["id"] == memory.id for r in records):
            raise ValueError(f"Memory {memory.id} already stored")
        records.append(memory.to_dict())
        if len(records) > self.max_per_student:
            records = self._evict(records)
        self.repo.put(f"memory:{memory.student_id}", records)
        logger.info(f"Stored memory {memory.kind.value} for {memory.student_id} ({len(records)} total)")

    def append_many(self, memories: Iterable[LearningMemory]) -> int:
        count = 0
        for memory in memories:
            self.append(memory)
            count += 1
        return count

    def list_for_student(self, student_id: str) -> List[LearningMemory]:
        return [LearningMemory.from_dict(r) for r in (self.repo.get(f"memory:{student_id}") or [])]

    # ===== Retrieval counters (frequency factor) =====

    def retrieval_counts(self, student_id: str) -> Dict[str, int]:
        return dict(self.repo.get(f"memory_recall:{student_id}") or {})

    def increment_retrieval(self, student_id: str, memory_ids: Iterable[str]) -> None:
        counts = self.retrieval_counts(student_id)
        for memory_id in memory_ids:
            counts[memory_id] = counts.get(memory_id, 0) + 1
        self.repo.put(f"memory_recall:{student_id}", counts)

    # ===== Policy =====

    def prune(self, student_id: str, now: datetime, max_age_days: int) -> int:
        """Drop low-importance memories older than the window; returns removed count"""
        records = self.repo.get(f"memory:{student_id}") or []
        cutoff = now - timedelta(days=max_age_days)
        kept = []
        for record in records:
            memory = LearningMemory.from_dict(record)
            if memory.is_high_importance or memory.created_at >= cutoff:
                kept.append(record)
        removed = len(records) - len(kept)
        if removed:
            self.repo.put(f"memory:{student_id}", kept)
            logger.info(f"Pruned {removed} expired memories for {student_id}")
        return removed

    def _evict(self, records: List[dict]) -> List[dict]:
        overflow = len(records) - self.max_per_student
        # Oldest low-importance records go first, then oldest overall
        ranked = sorted(
            range(len(records)),
            key=lambda i: (LearningMemory.from_dict(records[i]).is_high_importance, records[i]["created_at"]),
        )
        drop = set(ranked[:overflow])
        return [r for i, r in enumerate(records) if i not in drop]

    # ===== Export / import =====

    def export(self, student_id: str) -> List[dict]:
        return list(self.repo.get(f"memory:{student_id}") or [])

    def import_records(self, student_id: str, records: List[dict]) -> int:
        existing = self.repo.get(f"memory:{student_id}") or []
        known = {r["id"] for r in existing}
        added = 0
        for record in records:
            memory = LearningMemory.from_dict({**record, "student_id": student_id})
            if memory.id in known:
                continue
            existing.append(memory.to_dict())
            known.add(memory.id)
            added += 1
        self.repo.put(f"memory:{student_id}", existing)
        return added
