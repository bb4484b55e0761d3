# backend/studycoach/orchestrator/state.py
"""
State schema for the supervisor graph
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from typing_extensions import NotRequired, TypedDict

from studycoach.agents.base import AgentContext, AgentReply, AgentRequest
from studycoach.core.models import StudentProfile, StudyPlan
from studycoach.memory.models import BurnoutIndicator, LearningMemory, RetrievedMemory, TopicMastery
from studycoach.quest.models import DelayAnalysis, TodayQuests
from studycoach.router.intent import RouteDecision


class DispatchKind(Enum):
    SUCCESS = "SUCCESS"
    LLM_FAILURE = "LLM_FAILURE"
    TEMPLATE_FALLBACK = "TEMPLATE_FALLBACK"
    ENGINE = "ENGINE"


@dataclass
class DispatchResult:
    kind: DispatchKind
    reply: AgentReply
    attempts: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class CoachResponse:
    agent_role: str
    message: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    message_actions: List[Dict[str, Any]] = field(default_factory=list)
    reschedule_options: List[Dict[str, Any]] = field(default_factory=list)
    suggested_follow_up: List[str] = field(default_factory=list)
    intent: str = ""
    dispatch_kind: str = DispatchKind.SUCCESS.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_role": self.agent_role,
            "message": self.message,
            "actions": list(self.actions),
            "message_actions": list(self.message_actions),
            "reschedule_options": list(self.reschedule_options),
            "suggested_follow_up": list(self.suggested_follow_up),
            "intent": self.intent,
            "dispatch_kind": self.dispatch_kind,
        }


class SupervisorState(TypedDict):
    """State carried through the supervisor graph for one inbound message"""

    request: AgentRequest
    today: date
    now: datetime

    # Filled by assemble_context
    profile: NotRequired[StudentProfile]
    active_plans: NotRequired[List[StudyPlan]]
    recent_history: NotRequired[List[Dict[str, Any]]]
    memories: NotRequired[List[RetrievedMemory]]
    mastery_states: NotRequired[List[TopicMastery]]
    due_topics: NotRequired[List[str]]
    burnout: NotRequired[BurnoutIndicator]
    today_quests: NotRequired[Optional[TodayQuests]]
    delay: NotRequired[DelayAnalysis]
    weekly_stats: NotRequired[Dict[str, Any]]

    # Filled by classify
    route: NotRequired[RouteDecision]
    context: NotRequired[AgentContext]

    # Filled by short_circuit / dispatch
    dispatch: NotRequired[DispatchResult]
    reschedule_options: NotRequired[List[Dict[str, Any]]]

    # Filled by finalize
    extracted_memories: NotRequired[List[LearningMemory]]
    response: NotRequired[CoachResponse]
    trace: NotRequired[List[Dict[str, Any]]]
