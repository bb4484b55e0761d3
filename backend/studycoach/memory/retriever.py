"""
Memory retrieval and six-factor re-ranking.

Candidates are filtered by subject and a recency window, then scored on
recency, lexical relevance (BM25), importance, emotional salience,
mastery gap and retrieval frequency. The combined score is a weighted sum;
the emotional weight doubles while burnout risk is elevated.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set

from rank_bm25 import BM25Okapi

from studycoach.core.models import Subject
from studycoach.memory.models import (
    BurnoutLevel, Emotion, LearningMemory, MemoryKind, RetrievedMemory, NEGATIVE_EMOTION_KINDS
)

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[0-9A-Za-z가-힣]+")
HANGUL = re.compile(r"[가-힣]")

# Query cues that favour particular memory kinds
QUERY_KIND_HINTS = [
    (re.compile(r"틀린|틀렸|실수|오답"), {MemoryKind.WRONG_ANSWER, MemoryKind.CORRECTION}),
    (re.compile(r"패턴|습관|항상|매번"), {MemoryKind.PATTERN, MemoryKind.REVIEW_PATTERN}),
    (re.compile(r"진도|얼마나|성과|달성"), {MemoryKind.MASTERY, MemoryKind.PLAN_PERFORMANCE}),
    (re.compile(r"결정|선택|하기로"), {MemoryKind.DECISION}),
    (re.compile(r"어려|힘들|모르겠"), {MemoryKind.STRUGGLE, MemoryKind.GAP}),
]
KIND_HINT_BONUS = 0.2


@dataclass(frozen=True)
class RerankWeights:
    recency: float = 0.20
    relevance: float = 0.25
    importance: float = 0.20
    emotional: float = 0.10
    mastery_gap: float = 0.15
    frequency: float = 0.10

    def __post_init__(self):
        total = (self.recency + self.relevance + self.importance
                 + self.emotional + self.mastery_gap + self.frequency)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Re-ranking weights must sum to 1.0, got {total:.4f}")
        if min(self.recency, self.relevance, self.importance,
               self.emotional, self.mastery_gap, self.frequency) < 0:
            raise ValueError("Re-ranking weights must be non-negative")

    @classmethod
    def from_list(cls, values: Sequence[float]) -> "RerankWeights":
        return cls(*values)


def tokenize(text: str) -> List[str]:
    """Words plus Hangul character bigrams, so inflected Korean still overlaps"""
    tokens = []
    for word in TOKEN_PATTERN.findall(text.lower()):
        tokens.append(word)
        if HANGUL.search(word) and len(word) > 2:
            tokens.extend(word[i:i + 2] for i in range(len(word) - 1))
    return tokens


class MemoryRetriever:

    def __init__(self, weights: Optional[RerankWeights] = None, top_k: int = 8,
                 char_budget: int = 1200, low_importance_window_days: Optional[int] = 90,
                 recency_half_life_days: float = 14.0, frequency_cap: int = 20,
                 mastery_gap_threshold: float = 4.0):
        self.weights = weights or RerankWeights()
        self.top_k = top_k
        self.char_budget = char_budget
        self.low_importance_window_days = low_importance_window_days
        self.recency_half_life_days = recency_half_life_days
        self.frequency_cap = frequency_cap
        self.mastery_gap_threshold = mastery_gap_threshold

    def retrieve(self, query: str, memories: Sequence[LearningMemory],
                 subject_filter: Optional[Subject] = None,
                 burnout_risk: BurnoutLevel = BurnoutLevel.LOW,
                 mastery: Optional[Dict[str, float]] = None,
                 retrieval_counts: Optional[Dict[str, int]] = None,
                 now: Optional[datetime] = None) -> List[RetrievedMemory]:
        """Ordered top-K memories for the query. Returns [] rather than raising."""
        try:
            now = now or datetime.now()
            candidates = self.select_candidates(memories, subject_filter, now)
            if not candidates:
                return []
            ranked = self.rerank(query, candidates, burnout_risk, mastery or {},
                                 retrieval_counts or {}, now)
            return self._apply_budget(ranked[:self.top_k])
        except Exception as e:
            logger.error(f"Memory retrieval failed, returning no memories: {e}", exc_info=True)
            return []

    # ===== Phase 1: candidate selection =====

    def select_candidates(self, memories: Sequence[LearningMemory], subject_filter: Optional[Subject],
                          now: datetime) -> List[LearningMemory]:
        cutoff = None
        if self.low_importance_window_days is not None:
            cutoff = now - timedelta(days=self.low_importance_window_days)

        selected = []
        for memory in memories:
            if subject_filter not in (None, Subject.GENERAL) and memory.subject not in (subject_filter, Subject.GENERAL):
                continue
            if cutoff is not None and not memory.is_high_importance and memory.created_at < cutoff:
                continue
            selected.append(memory)
        return selected

    # ===== Phase 2: re-ranking =====

    def rerank(self, query: str, candidates: Sequence[LearningMemory], burnout_risk: BurnoutLevel,
               mastery: Dict[str, float], retrieval_counts: Dict[str, int],
               now: datetime) -> List[RetrievedMemory]:
        relevance = self._relevance_scores(query, candidates)
        emotional_weight = self.weights.emotional * (2 if burnout_risk.elevated else 1)

        results = []
        for memory, rel in zip(candidates, relevance):
            factors = {
                "recency": self._recency(memory, now),
                "relevance": rel,
                "importance": max(0.0, min(1.0, memory.importance)),
                "emotional": self._emotional(memory),
                "mastery_gap": self._mastery_gap(memory, mastery),
                "frequency": self._frequency(retrieval_counts.get(memory.id, 0)),
            }
            score = (
                self.weights.recency * factors["recency"]
                + self.weights.relevance * factors["relevance"]
                + self.weights.importance * factors["importance"]
                + emotional_weight * factors["emotional"]
                + self.weights.mastery_gap * factors["mastery_gap"]
                + self.weights.frequency * factors["frequency"]
            )
            results.append(RetrievedMemory(memory=memory, score=score, factors=factors))

        # Highest score first; ties go to the newest memory, then id for a total order
        results.sort(key=lambda r: (-r.score, -r.memory.created_at.timestamp(), r.memory.id))
        return results

    def _recency(self, memory: LearningMemory, now: datetime) -> float:
        age_days = max(0.0, (now - memory.created_at).total_seconds() / 86400)
        return 0.5 ** (age_days / self.recency_half_life_days)

    def _relevance_scores(self, query: str, candidates: Sequence[LearningMemory]) -> List[float]:
        query_tokens = tokenize(query)
        docs = [tokenize(f"{m.title} {m.content} {m.topic}") for m in candidates]

        scores = [0.0] * len(candidates)
        if query_tokens and any(docs):
            bm25 = BM25Okapi([d or ["_"] for d in docs])
            raw = [float(s) for s in bm25.get_scores(query_tokens)]
            top = max(raw) if raw else 0.0
            if top > 0:
                scores = [max(0.0, s) / top for s in raw]
            else:
                scores = [self._jaccard(set(query_tokens), set(d)) for d in docs]

        hinted = self._hinted_kinds(query)
        if hinted:
            scores = [
                min(1.0, s + KIND_HINT_BONUS) if m.kind in hinted else s
                for s, m in zip(scores, candidates)
            ]
        return scores

    @staticmethod
    def _jaccard(a: Set[str], b: Set[str]) -> float:
        if not a or not b:
            return 0.0
        return len(a & b) / len(a | b)

    @staticmethod
    def _hinted_kinds(query: str) -> Set[MemoryKind]:
        kinds: Set[MemoryKind] = set()
        for pattern, hinted in QUERY_KIND_HINTS:
            if pattern.search(query):
                kinds |= hinted
        return kinds

    @staticmethod
    def _emotional(memory: LearningMemory) -> float:
        if memory.kind in NEGATIVE_EMOTION_KINDS:
            return 1.0
        if memory.kind == MemoryKind.EMOTION and memory.emotion in (
                Emotion.FRUSTRATED, Emotion.TIRED, Emotion.CONFUSED):
            return 0.5
        return 0.0

    def _mastery_gap(self, memory: LearningMemory, mastery: Dict[str, float]) -> float:
        score = mastery.get(memory.topic)
        if score is None or score >= self.mastery_gap_threshold:
            return 0.0
        return 1.0 - max(0.0, score) / self.mastery_gap_threshold

    def _frequency(self, count: int) -> float:
        if count <= 0:
            return 0.0
        return min(1.0, math.log1p(count) / math.log1p(self.frequency_cap))

    def _apply_budget(self, ranked: List[RetrievedMemory]) -> List[RetrievedMemory]:
        kept, used = [], 0
        for item in ranked:
            size = len(item.rendered)
            if used + size > self.char_budget:
                break
            kept.append(item)
            used += size
        return kept
