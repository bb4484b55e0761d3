"""
Burnout monitor.
Derives a LOW/MEDIUM/HIGH risk level from emotional memories and quest
behaviour (consecutive missed days, rolling completion rate). Nothing here
is stored; the indicator is recomputed on every request.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from studycoach.memory.models import (
    BurnoutIndicator, BurnoutLevel, Emotion, EmotionRecord, LearningMemory,
    NEGATIVE_EMOTION_KINDS, POSITIVE_EMOTIONS
)

logger = logging.getLogger(__name__)

EMOTION_WEIGHTS: Dict[Emotion, float] = {
    Emotion.FRUSTRATED: 0.9,
    Emotion.TIRED: 0.7,
    Emotion.CONFUSED: 0.5,
    Emotion.NEUTRAL: 0.0,
    Emotion.CURIOUS: -0.2,
    Emotion.MOTIVATED: -0.5,
    Emotion.CONFIDENT: -0.5,
}

COPING_STRATEGIES: Dict[BurnoutLevel, List[str]] = {
    BurnoutLevel.LOW: [
        "💪 좋은 컨디션이에요! 지금 페이스를 유지해요.",
        "🎯 집중력이 떨어지기 전에 짧게 쉬어가요.",
    ],
    BurnoutLevel.MEDIUM: [
        "⏰ 학습 시간을 조금 줄이고 휴식을 늘려봐요.",
        "🚶 가벼운 산책이나 스트레칭을 해봐요.",
        "🎵 좋아하는 음악을 들으며 잠시 쉬어가요.",
    ],
    BurnoutLevel.HIGH: [
        "🚨 번아웃 위험이 높아요. 오늘은 쉬는 걸 권해요.",
        "😴 충분히 자는 것이 먼저예요.",
        "🗣️ 부모님이나 선생님과 이야기해봐요.",
        "✋ 목표를 조금 낮춰도 괜찮아요.",
    ],
}


class BurnoutMonitor:

    def __init__(self, window_days: int = 7, high_threshold: float = 0.7,
                 medium_threshold: float = 0.4):
        self.window_days = window_days
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold

    def assess(self, student_id: str, memories: Sequence[LearningMemory] = (),
               consecutive_missed_days: int = 0, completion_rate_7d: Optional[float] = None,
               now: Optional[datetime] = None) -> BurnoutIndicator:
        now = now or datetime.now()
        recent = self._window(memories, now)
        emotions = self.emotion_records(recent)

        emotion_score = self.emotion_score(emotions) if emotions else None
        behaviour_score = self.behaviour_score(consecutive_missed_days, completion_rate_7d)

        if emotion_score is not None and behaviour_score is not None:
            score = (emotion_score + behaviour_score) / 2
        elif emotion_score is not None:
            score = emotion_score
        elif behaviour_score is not None:
            score = behaviour_score
        else:
            score = 0.0

        level = self.level_for(score)
        warnings = self.warning_signals(emotions, consecutive_missed_days, completion_rate_7d)
        negative_ratio = (sum(1 for m in recent if m.is_negative) / len(recent)) if recent else 0.0

        indicator = BurnoutIndicator(
            student_id=student_id,
            level=level,
            score=score,
            consecutive_missed_days=consecutive_missed_days,
            completion_rate_7d=completion_rate_7d,
            negative_memory_ratio=negative_ratio,
            warning_signals=warnings,
            coping_strategies=self.coping_strategies(level, warnings),
            assessed_at=now,
        )
        if level is not BurnoutLevel.LOW:
            logger.info(f"Burnout {level.value} for {student_id} (score={score:.2f}, warnings={len(warnings)})")
        return indicator

    def level_for(self, score: float) -> BurnoutLevel:
        if score >= self.high_threshold:
            return BurnoutLevel.HIGH
        if score >= self.medium_threshold:
            return BurnoutLevel.MEDIUM
        return BurnoutLevel.LOW

    def _window(self, memories: Sequence[LearningMemory], now: datetime) -> List[LearningMemory]:
        cutoff = now - timedelta(days=self.window_days)
        return sorted((m for m in memories if cutoff <= m.created_at <= now), key=lambda m: m.created_at)

    @staticmethod
    def emotion_records(memories: Sequence[LearningMemory]) -> List[EmotionRecord]:
        """
        Emotion signal carried by memories, oldest first.
        Neutral memories carry no signal; struggle kinds without a detected
        emotion count as frustration.
        """
        records = []
        for m in memories:
            emotion = m.emotion
            if emotion == Emotion.NEUTRAL:
                if m.kind not in NEGATIVE_EMOTION_KINDS:
                    continue
                emotion = Emotion.FRUSTRATED
            records.append(EmotionRecord(emotion=emotion, timestamp=m.created_at))
        return records

    @staticmethod
    def emotion_score(records: Sequence[EmotionRecord], min_evidence: int = 3) -> float:
        """
        Recency-weighted emotion weight, floored at 0 and scaled by evidence
        so that fewer than `min_evidence` records cannot reach full weight.
        """
        if not records:
            return 0.0
        weighted, total = 0.0, 0.0
        n = len(records)
        for i, record in enumerate(records):
            recency = (i + 1) / n
            weighted += EMOTION_WEIGHTS[record.emotion] * recency
            total += recency
        raw = weighted / total if total else 0.0
        evidence = min(1.0, n / min_evidence)
        return max(0.0, min(1.0, raw)) * evidence

    @staticmethod
    def behaviour_score(consecutive_missed_days: int, completion_rate_7d: Optional[float]) -> Optional[float]:
        if completion_rate_7d is None and consecutive_missed_days <= 0:
            return None
        missed = min(consecutive_missed_days / 3, 1.0)
        if completion_rate_7d is None:
            return min(1.0, missed)
        return 0.5 * missed + 0.5 * (1 - max(0.0, min(1.0, completion_rate_7d)))

    @staticmethod
    def warning_signals(records: Sequence[EmotionRecord], consecutive_missed_days: int,
                        completion_rate_7d: Optional[float]) -> List[str]:
        signals = []

        streak = 0
        for record in reversed(records):
            if record.emotion != Emotion.FRUSTRATED:
                break
            streak += 1
        if streak >= 3:
            signals.append("연속 3회 이상 좌절감을 느끼고 있어요.")

        if sum(1 for r in records if r.emotion == Emotion.TIRED) >= 4:
            signals.append("피로감을 자주 호소하고 있어요.")

        if len(records) >= 7 and not any(r.emotion in POSITIVE_EMOTIONS for r in records):
            signals.append("최근 일주일간 긍정적인 감정이 없었어요.")

        if consecutive_missed_days >= 2:
            signals.append(f"{consecutive_missed_days}일 연속으로 퀘스트를 놓쳤어요.")

        if completion_rate_7d is not None and completion_rate_7d < 0.5:
            signals.append(f"최근 7일 완료율이 {completion_rate_7d * 100:.0f}%예요.")

        return signals

    @staticmethod
    def coping_strategies(level: BurnoutLevel, warnings: Sequence[str]) -> List[str]:
        strategies = list(COPING_STRATEGIES[level])
        if warnings:
            strategies.insert(0, f"⚠️ 주의: {len(warnings)}개의 경고 신호가 감지되었어요.")
        return strategies

    @staticmethod
    def should_continue(indicator: BurnoutIndicator) -> Dict[str, str]:
        if indicator.level == BurnoutLevel.HIGH:
            return {"recommendation": "STOP_TODAY", "reason": "번아웃 위험이 높아요. 오늘은 충분히 쉬어요."}
        if indicator.level == BurnoutLevel.MEDIUM:
            return {"recommendation": "TAKE_BREAK", "reason": "피로가 쌓이고 있어요. 짧게 쉬어가요."}
        return {"recommendation": "CONTINUE", "reason": "컨디션이 좋아요. 계속해도 괜찮아요."}

    def emotion_trend(self, records: Sequence[EmotionRecord]) -> Dict[str, str]:
        if len(records) < 4:
            return {"trend": "STABLE", "summary": "아직 데이터가 충분하지 않아요."}
        mid = len(records) // 2
        diff = self.emotion_score(records[mid:]) - self.emotion_score(records[:mid])
        if diff < -0.1:
            return {"trend": "IMPROVING", "summary": "감정 상태가 좋아지고 있어요! 👍"}
        if diff > 0.1:
            return {"trend": "DECLINING", "summary": "스트레스가 늘고 있어요. 주의가 필요해요."}
        return {"trend": "STABLE", "summary": "감정 상태가 안정적이에요."}
