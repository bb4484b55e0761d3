"""
Renders a context bundle into the prompt block handed to an agent
"""
from typing import List, Optional, Sequence

from studycoach.core.models import Subject
from studycoach.memory.models import BurnoutIndicator, MemoryKind, RetrievedMemory, TopicMastery

KIND_EMOJI = {
    MemoryKind.CORRECTION: "🔄", MemoryKind.DECISION: "📌", MemoryKind.INSIGHT: "💡",
    MemoryKind.PATTERN: "🔁", MemoryKind.GAP: "⚠️", MemoryKind.LEARNING: "📚",
    MemoryKind.MASTERY: "✅", MemoryKind.STRUGGLE: "😓", MemoryKind.WRONG_ANSWER: "❌",
    MemoryKind.STRATEGY: "🎯", MemoryKind.PREFERENCE: "❤️", MemoryKind.EMOTION: "💭",
    MemoryKind.PLAN_PERFORMANCE: "📊", MemoryKind.REVIEW_PATTERN: "🔍",
}


def _bar(ratio: float, width: int = 5) -> str:
    filled = max(0, min(width, round(ratio * width)))
    return "█" * filled + "░" * (width - filled)


class ContextInjector:

    def __init__(self, max_memories: int = 5, max_mastery: int = 3, char_budget: int = 2000,
                 include_burnout: bool = True, verbose: bool = False):
        self.max_memories = max_memories
        self.max_mastery = max_mastery
        self.char_budget = char_budget
        self.include_burnout = include_burnout
        self.verbose = verbose

    def render(self, memories: Sequence[RetrievedMemory], mastery: Sequence[TopicMastery],
               due_topics: Sequence[str], burnout: Optional[BurnoutIndicator],
               current_subject: Optional[Subject] = None) -> str:
        sections = []
        if memories:
            sections.append(self._memories(memories))
        if mastery:
            sections.append(self._mastery(mastery, current_subject))
        if due_topics:
            sections.append("## 복습 필요 토픽\n" + "\n".join(f"- {t}" for t in due_topics[:5]))
        if self.include_burnout and burnout is not None:
            sections.append(self._burnout(burnout))

        if not sections:
            return ""
        body = "\n\n".join(sections)
        if len(body) > self.char_budget:
            body = body[:self.char_budget - 3] + "..."
        return f"<학생_학습_컨텍스트>\n{body}\n</학생_학습_컨텍스트>"

    def _memories(self, memories: Sequence[RetrievedMemory]) -> str:
        lines = []
        for i, item in enumerate(memories[:self.max_memories], start=1):
            emoji = KIND_EMOJI[item.memory.kind]
            if self.verbose:
                lines.append(
                    f"{i}. {emoji} [{item.memory.kind.value}] {item.memory.title}\n"
                    f"   내용: {item.memory.content[:100]}\n"
                    f"   관련도: {_bar(item.score)} ({item.score * 100:.0f}%) | 과목: {item.memory.subject.value}"
                )
            else:
                lines.append(f"{i}. {emoji} {item.rendered}")
        return "## 관련 학습 기억\n" + "\n".join(lines)

    def _mastery(self, mastery: Sequence[TopicMastery], current_subject: Optional[Subject]) -> str:
        # Current subject first, then weakest topics
        ordered = sorted(
            mastery,
            key=lambda m: (0 if current_subject and m.subject == current_subject else 1, m.mastery),
        )[:self.max_mastery]
        lines: List[str] = [
            f"- {m.topic_id}: {_bar(m.mastery / 10)} ({m.mastery:.1f}/10)" for m in ordered
        ]
        return "## 토픽 숙달도\n" + "\n".join(lines)

    @staticmethod
    def _burnout(burnout: BurnoutIndicator) -> str:
        lines = [f"## 컨디션: {burnout.level.value}"]
        lines.extend(f"- {s}" for s in burnout.warning_signals[:3])
        if burnout.coping_strategies:
            lines.append(f"- 권장: {burnout.coping_strategies[0]}")
        return "\n".join(lines)
