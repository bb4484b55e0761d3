from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from studycoach.core.errors import MalformedAgentOutputError
from studycoach.core.models import StudentProfile, StudyPlan
from studycoach.llm.client import LLMClient
from studycoach.memory.models import BurnoutIndicator, RetrievedMemory, TopicMastery
from studycoach.quest.models import DelayAnalysis, TodayQuests


class AgentRole(Enum):
    ADMISSION = "ADMISSION"
    PLANNER = "PLANNER"
    COACH = "COACH"
    ANALYST = "ANALYST"


@dataclass
class AgentRequest:
    student_id: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    quest_context: Optional[Dict[str, Any]] = None
    conversation_id: Optional[str] = None


@dataclass
class AgentContext:
    """Bounded context bundle handed to an agent"""
    profile: StudentProfile
    relevant_memories: List[RetrievedMemory] = field(default_factory=list)
    mastery_summary: List[TopicMastery] = field(default_factory=list)
    due_topics: List[str] = field(default_factory=list)
    today_quests: Optional[TodayQuests] = None
    active_plans: List[StudyPlan] = field(default_factory=list)
    burnout: Optional[BurnoutIndicator] = None
    delay: Optional[DelayAnalysis] = None
    weekly_stats: Dict[str, Any] = field(default_factory=dict)
    recent_history: List[Dict[str, Any]] = field(default_factory=list)
    memory_block: str = ""
    complexity: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile.to_dict(),
            "relevant_memories": [m.to_dict() for m in self.relevant_memories],
            "mastery_summary": [m.to_dict() for m in self.mastery_summary],
            "due_topics": list(self.due_topics),
            "today_quests": self.today_quests.to_dict() if self.today_quests else None,
            "active_plans": [p.to_dict() for p in self.active_plans],
            "burnout": self.burnout.to_dict() if self.burnout else None,
            "delay": self.delay.to_dict() if self.delay else None,
            "weekly_stats": dict(self.weekly_stats),
        }


@dataclass
class AgentReply:
    message: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    suggested_follow_up: List[str] = field(default_factory=list)
    message_actions: List[Dict[str, Any]] = field(default_factory=list)


class BaseAgent(ABC):
    """
    Common capability interface: build a prompt from the context bundle, call
    the LLM layer with the route's complexity, then derive structured actions.
    """

    system_prompt: str = ""
    max_tokens: int = 1024
    history_turns: int = 6

    def __init__(self, role: AgentRole, llm: LLMClient):
        self.role = role
        self.llm = llm
        self.name = role.value

    async def process(self, request: AgentRequest, context: AgentContext) -> AgentReply:
        self.log_action("processing", request.message[:60])
        messages = self.build_messages(request, context)
        response = await self.llm.call_with_complexity(messages, context.complexity, max_tokens=self.max_tokens)

        content = (response.content or "").strip()
        if not content:
            raise MalformedAgentOutputError(f"{self.name} received an empty completion from {response.model}")
        self.log_action("responded", f"{response.model} in {response.latency_ms}ms")

        return AgentReply(
            message=content,
            actions=self.actions_for(request, context),
            suggested_follow_up=self.follow_ups(request, context),
        )

    def build_messages(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, str]]:
        prompt = "\n\n".join(part for part in (
            self.system_prompt,
            self.student_info(context),
            self.extra_context(context),
            context.memory_block,
        ) if part)
        messages = [{"role": "system", "content": prompt}]
        for turn in context.recent_history[-self.history_turns:]:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": request.message})
        return messages

    @staticmethod
    def student_info(context: AgentContext) -> str:
        profile = context.profile
        subjects = ", ".join(s.value for s in profile.enrolled_subjects) or "미설정"
        lines = [
            "## 학생 정보",
            f"- 이름: {profile.name}",
            f"- 학년: {profile.grade}",
            f"- 수강 과목: {subjects}",
        ]
        if profile.target_exam:
            lines.append(f"- 목표 시험: {profile.target_exam}")
        if profile.goals:
            lines.append(f"- 목표: {', '.join(profile.goals)}")
        return "\n".join(lines)

    def extra_context(self, context: AgentContext) -> str:
        return ""

    @abstractmethod
    def actions_for(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, Any]]:
        pass

    def follow_ups(self, request: AgentRequest, context: AgentContext) -> List[str]:
        return []

    def log_action(self, action: str, details: str):
        print(f"[{self.name}] {action}: {details}")
