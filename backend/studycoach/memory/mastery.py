"""
Mastery & spaced-repetition manager (SM-2 variant).

State per (student, topic): easiness factor E (initial 2.5, floor 1.3),
interval I in days, repetition count n and a 0-10 mastery score M that is
an exponential blend of review quality.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from studycoach.core.errors import InvalidQualityError, TopicNotInPlanError
from studycoach.core.models import Subject
from studycoach.core.storage import Repository
from studycoach.memory.models import TopicMastery

logger = logging.getLogger(__name__)

MIN_EASINESS = 1.3
INITIAL_EASINESS = 2.5
MASTERY_ALPHA = 0.3
MASTERED_THRESHOLD = 8.0
STRUGGLING_THRESHOLD = 3.0


def sm2_update(state: TopicMastery, quality: int, today: date, max_interval: int = 180) -> TopicMastery:
    """Pure SM-2 step. Returns a new TopicMastery; `state` is left untouched."""
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
        raise InvalidQualityError(quality)

    miss = 5 - quality
    easiness = max(MIN_EASINESS, state.easiness + (0.1 - miss * (0.08 + miss * 0.02)))

    if quality < 3:
        repetitions = 0
        interval = 1
    else:
        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = 6
        else:
            interval = round(state.interval * easiness)
    interval = max(1, min(interval, max_interval))

    next_due = today + timedelta(days=interval)
    # next_due never moves backwards across reviews of the same topic
    if state.next_due and next_due < state.next_due:
        next_due = state.next_due

    mastery = (1 - MASTERY_ALPHA) * state.mastery + MASTERY_ALPHA * (quality / 5 * 10)
    mastery = max(0.0, min(10.0, mastery))

    return TopicMastery(
        student_id=state.student_id,
        topic_id=state.topic_id,
        subject=state.subject,
        mastery=round(mastery, 4),
        easiness=round(easiness, 4),
        interval=interval,
        repetitions=repetitions,
        next_due=next_due,
        last_reviewed=today,
        total_reviews=state.total_reviews + 1,
        successful_reviews=state.successful_reviews + (1 if quality >= 3 else 0),
    )


class MasteryManager:
    """
    Records graded reviews and answers "what is due".
    `topic_guard` returns the topics in the student's active plans; reviews of
    any other topic are rejected.
    """

    def __init__(self, repository: Repository,
                 topic_guard: Optional[Callable[[str], List[str]]] = None,
                 max_interval_days: int = 180):
        self.repo = repository
        self.topic_guard = topic_guard
        self.max_interval_days = max_interval_days

    def record_review(self, student_id: str, topic_id: str, quality: int,
                      today: Optional[date] = None, subject: Subject = Subject.GENERAL) -> TopicMastery:
        if self.topic_guard is not None and topic_id not in self.topic_guard(student_id):
            raise TopicNotInPlanError(student_id, topic_id)

        today = today or date.today()
        states = self._load(student_id)
        current = states.get(topic_id) or TopicMastery(
            student_id=student_id, topic_id=topic_id, subject=subject
        )
        updated = sm2_update(current, quality, today, self.max_interval_days)
        states[topic_id] = updated
        self._save(student_id, states)

        logger.info(
            f"Review {student_id}/{topic_id}: q={quality} E={updated.easiness:.2f} "
            f"I={updated.interval}d n={updated.repetitions} M={updated.mastery:.1f}"
        )
        return updated

    def get(self, student_id: str, topic_id: str) -> Optional[TopicMastery]:
        return self._load(student_id).get(topic_id)

    def all_for_student(self, student_id: str) -> List[TopicMastery]:
        return sorted(self._load(student_id).values(), key=lambda m: m.topic_id)

    def mastery_map(self, student_id: str) -> Dict[str, float]:
        return {topic: state.mastery for topic, state in self._load(student_id).items()}

    def due_topics(self, student_id: str, as_of: Optional[date] = None) -> List[str]:
        """Topics with next_due <= as_of, most overdue first"""
        as_of = as_of or date.today()
        due = [m for m in self._load(student_id).values() if m.next_due and m.next_due <= as_of]
        due.sort(key=lambda m: (m.next_due, m.topic_id))
        return [m.topic_id for m in due]

    def subject_stats(self, student_id: str, subject: Subject) -> Dict[str, float]:
        topics = [m for m in self._load(student_id).values() if m.subject == subject]
        if not topics:
            return {"topics": 0, "mastered": 0, "struggling": 0, "average_mastery": 0.0}
        return {
            "topics": len(topics),
            "mastered": sum(1 for m in topics if m.mastery >= MASTERED_THRESHOLD),
            "struggling": sum(1 for m in topics if m.mastery < STRUGGLING_THRESHOLD),
            "average_mastery": round(sum(m.mastery for m in topics) / len(topics), 2),
        }

    def recommendations(self, student_id: str, as_of: Optional[date] = None) -> List[str]:
        as_of = as_of or date.today()
        tips = []
        due = self.due_topics(student_id, as_of)
        if due:
            tips.append(f"복습이 필요한 토픽 {len(due)}개: {', '.join(due[:3])}")
        struggling = [m.topic_id for m in self.all_for_student(student_id) if m.mastery < STRUGGLING_THRESHOLD
                      and m.total_reviews > 0]
        if struggling:
            tips.append(f"기초를 다시 다져볼 토픽: {', '.join(struggling[:3])}")
        if not tips:
            tips.append("모든 토픽이 순조롭게 유지되고 있어요!")
        return tips

    def _load(self, student_id: str) -> Dict[str, TopicMastery]:
        raw = self.repo.get(f"mastery:{student_id}") or {}
        return {topic: TopicMastery.from_dict(data) for topic, data in raw.items()}

    def _save(self, student_id: str, states: Dict[str, TopicMastery]) -> None:
        self.repo.put(f"mastery:{student_id}", {t: m.to_dict() for t, m in states.items()})
