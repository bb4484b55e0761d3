# backend/studycoach/orchestrator/supervisor.py
"""
Supervisor - LangGraph workflow handling one inbound student message.

    assemble_context -> classify -> short_circuit | dispatch -> finalize -> END

assemble_context loads the profile (creating it on first contact) and then
fans out concurrently over Memory Lane retrieval with the burnout
assessment, the mastery manager and the quest engine. classify routes the
message and builds the bounded context bundle. Schedule queries and
schedule changes are answered by the engine in short_circuit; everything
else goes to one agent in dispatch (one retry, then a templated reply).
finalize persists captured memories, the exchange and last-active.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from langgraph.graph import StateGraph, END

from studycoach.agents.base import AgentContext, AgentReply, AgentRequest, AgentRole, BaseAgent
from studycoach.core.errors import LLMError, MalformedAgentOutputError, PersistenceError
from studycoach.core.execution_trace import execution_trace
from studycoach.core.locks import StudentLocks
from studycoach.core.models import StudentProfile, Subject
from studycoach.core.registry import StudentRegistry
from studycoach.memory.burnout import BurnoutMonitor
from studycoach.memory.catcher import MemoryCatcher
from studycoach.memory.injector import ContextInjector
from studycoach.memory.lane import MemoryLane
from studycoach.memory.mastery import MasteryManager
from studycoach.memory.models import BurnoutIndicator, BurnoutLevel, RetrievedMemory, TopicMastery
from studycoach.orchestrator.history import ConversationHistory
from studycoach.orchestrator.schedule import render_today, reschedule_options, today_actions
from studycoach.orchestrator.state import CoachResponse, DispatchKind, DispatchResult, SupervisorState
from studycoach.quest.models import DelayAnalysis, TodayQuests
from studycoach.quest.rescheduler import AdaptiveRescheduler
from studycoach.quest.service import QuestService
from studycoach.router.intent import RouteDecision, classify as classify_intent
from studycoach.utils.transcript import open_transcript

logger = logging.getLogger(__name__)

ENGINE_INTENTS = {"SCHEDULE_QUERY", "SCHEDULE_CHANGE"}
MAX_MASTERY_TOPICS = 5
DISPATCH_ATTEMPTS = 2

FALLBACK_MESSAGES = {
    AgentRole.ADMISSION: "반가워요! 😊 지금은 답변을 준비하는 데 문제가 있어요. 학년과 공부하고 싶은 과목을 알려주면 이어서 도와줄게요.",
    AgentRole.PLANNER: "계획을 세우는 중에 문제가 생겼어요. 😥 잠시 후 다시 물어봐 줄래요? 그동안 오늘의 퀘스트부터 시작해봐요!",
    AgentRole.COACH: "지금 잠깐 생각이 정리되지 않네요. 😅 그래도 여기까지 온 것만으로도 충분히 잘하고 있어요. 조금 뒤에 다시 이야기해요!",
    AgentRole.ANALYST: "진도 분석을 불러오지 못했어요. 😥 오늘의 퀘스트 화면에서 진행 상황을 먼저 확인해볼까요?",
}

REST_FALLBACK = "많이 지쳤을 것 같아요. 💕 오늘은 무리하지 말고 푹 쉬어요. 쉬는 것도 공부의 일부예요."


def route_after_classify(state: SupervisorState) -> str:
    route = state["route"]
    if route.role == AgentRole.COACH and not route.overridden and route.intent in ENGINE_INTENTS:
        return "short_circuit"
    return "dispatch"


class Supervisor:
    """Owns the per-message workflow; every collaborator is injected"""

    def __init__(self, registry: StudentRegistry, lane: MemoryLane, mastery: MasteryManager,
                 burnout_monitor: BurnoutMonitor, quests: QuestService,
                 rescheduler: AdaptiveRescheduler, agents: Dict[AgentRole, BaseAgent],
                 history: ConversationHistory, injector: Optional[ContextInjector] = None,
                 locks: Optional[StudentLocks] = None, transcript_dir: str = "",
                 clock: Callable[[], datetime] = datetime.now):
        self.registry = registry
        self.lane = lane
        self.mastery = mastery
        self.burnout_monitor = burnout_monitor
        self.quests = quests
        self.rescheduler = rescheduler
        self.agents = agents
        self.history = history
        self.injector = injector or ContextInjector()
        self.locks = locks or StudentLocks()
        self.transcript_dir = transcript_dir
        self.clock = clock

        self.graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(SupervisorState)

        workflow.add_node("assemble_context", self.assemble_context)
        workflow.add_node("classify", self.classify)
        workflow.add_node("short_circuit", self.short_circuit)
        workflow.add_node("dispatch", self.dispatch)
        workflow.add_node("finalize", self.finalize)

        workflow.set_entry_point("assemble_context")
        workflow.add_edge("assemble_context", "classify")
        workflow.add_conditional_edges(
            "classify",
            route_after_classify,
            {
                "short_circuit": "short_circuit",
                "dispatch": "dispatch",
            }
        )
        workflow.add_edge("short_circuit", "finalize")
        workflow.add_edge("dispatch", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    # ========================================================================
    # Public API
    # ========================================================================

    async def run(self, request: AgentRequest, now: Optional[datetime] = None) -> SupervisorState:
        """Run the graph for one message and return the final state"""
        now = now or self.clock()
        execution_trace.clear()
        print(f"[SUPERVISOR] {request.student_id}: {request.message[:60]!r}")

        async with self.locks.hold(request.student_id):
            result = await self.graph.ainvoke({"request": request, "today": now.date(), "now": now})

        response = result["response"]
        print(f"[SUPERVISOR] Done | agent={response.agent_role} kind={response.dispatch_kind}")
        return result

    async def handle(self, request: AgentRequest, now: Optional[datetime] = None) -> CoachResponse:
        state = await self.run(request, now)
        return state["response"]

    # ========================================================================
    # Nodes
    # ========================================================================

    async def assemble_context(self, state: SupervisorState) -> Dict[str, Any]:
        request = state["request"]
        student_id = request.student_id
        today, now = state["today"], state["now"]

        profile = await asyncio.to_thread(
            self.registry.ensure_student, student_id, request.metadata.get("name", "학생")
        )
        plans, history = await asyncio.gather(
            asyncio.to_thread(self.registry.get_active_plans, student_id),
            asyncio.to_thread(self.history.recent, student_id),
        )

        # Barrier: nothing is dispatched until every branch has finished
        (memories, burnout), (states, due), (today_quests, delay, weekly) = await asyncio.gather(
            asyncio.to_thread(self._memory_branch, request, now),
            asyncio.to_thread(self._mastery_branch, student_id, today),
            asyncio.to_thread(self._quest_branch, request, today),
        )

        execution_trace.add("SUPERVISOR", "Context assembled", "📦", {
            "memories": len(memories),
            "due_topics": len(due),
            "burnout": burnout.level.value,
            "plans": len(plans),
        })
        return {
            "profile": profile,
            "active_plans": plans,
            "recent_history": history,
            "memories": memories,
            "mastery_states": states,
            "due_topics": due,
            "burnout": burnout,
            "today_quests": today_quests,
            "delay": delay,
            "weekly_stats": weekly,
        }

    async def classify(self, state: SupervisorState) -> Dict[str, Any]:
        request = state["request"]
        route = classify_intent(
            request.message,
            recent_history=state.get("recent_history", []),
            burnout_level=state["burnout"].level,
            level_test_active=bool(request.metadata.get("level_test_active")),
        )
        execution_trace.add("ROUTER", route.reasoning, "🧭", route.to_dict())
        return {"route": route, "context": self._build_context(state, route)}

    async def short_circuit(self, state: SupervisorState) -> Dict[str, Any]:
        request, route = state["request"], state["route"]
        today_quests = state.get("today_quests")

        if route.intent == "SCHEDULE_QUERY":
            reply = AgentReply(
                message=render_today(today_quests),
                actions=[{"type": "SHOW_TODAY_QUESTS", "data": today_quests.to_dict() if today_quests else None}],
                suggested_follow_up=["내일로 미뤄줘", "내 진도 어때?"],
                message_actions=today_actions(today_quests),
            )
            options: List[Dict[str, Any]] = []
        else:
            result = await asyncio.to_thread(
                reschedule_options, request.message, today_quests, self.quests, self.rescheduler, state["today"]
            )
            options = result["options"]
            reply = AgentReply(
                message=result["message"],
                actions=[{"type": "RESCHEDULE_OPTIONS", "data": {"count": len(options)}}] if options else [],
                suggested_follow_up=["오늘 뭐 공부해?"],
                message_actions=result["message_actions"],
            )

        execution_trace.add("ENGINE", f"Answered {route.intent} without an agent", "⚙️")
        return {
            "dispatch": DispatchResult(kind=DispatchKind.ENGINE, reply=reply),
            "reschedule_options": options,
        }

    async def dispatch(self, state: SupervisorState) -> Dict[str, Any]:
        request, route, context = state["request"], state["route"], state["context"]
        agent = self.agents[route.role]

        errors: List[str] = []
        for attempt in range(1, DISPATCH_ATTEMPTS + 1):
            result = await self._attempt(agent, request, context, attempt)
            if result.kind == DispatchKind.SUCCESS:
                result.errors = errors
                return {"dispatch": result}
            errors.extend(result.errors)

        logger.error(f"{agent.name} failed {DISPATCH_ATTEMPTS} times for {request.student_id}; using template")
        execution_trace.add("SUPERVISOR", f"{agent.name} unavailable, templated reply", "🛟", {"errors": errors})
        return {
            "dispatch": DispatchResult(
                kind=DispatchKind.TEMPLATE_FALLBACK,
                reply=self.fallback_reply(route, state["burnout"]),
                attempts=DISPATCH_ATTEMPTS,
                errors=errors,
            )
        }

    async def finalize(self, state: SupervisorState) -> Dict[str, Any]:
        request, route, dispatch = state["request"], state["route"], state["dispatch"]
        student_id = request.student_id
        now = state["now"]
        reply = dispatch.reply
        conversation_id = request.conversation_id or f"{student_id}-{state['today'].isoformat()}"

        subject = MemoryCatcher.detect_subject(request.message)
        extracted = await asyncio.to_thread(
            self.lane.extract_and_store,
            student_id, [{"role": "user", "content": request.message}], subject, conversation_id, now,
        )
        await asyncio.to_thread(
            self.history.append_exchange, student_id, request.message, reply.message, route.role.value, now
        )
        await asyncio.to_thread(self._apply_profile_updates, student_id, reply.actions)
        await asyncio.to_thread(self.registry.touch, student_id)

        if dispatch.kind == DispatchKind.SUCCESS:
            injected = [m.memory.id for m in state.get("memories", [])[:self.injector.max_memories]]
            await asyncio.to_thread(self.lane.record_feedback, student_id, injected)

        response = CoachResponse(
            agent_role=route.role.value,
            message=reply.message,
            actions=reply.actions,
            message_actions=reply.message_actions,
            reschedule_options=state.get("reschedule_options", []),
            suggested_follow_up=reply.suggested_follow_up,
            intent=route.intent,
            dispatch_kind=dispatch.kind.value,
        )
        self._write_transcript(conversation_id, request, route, dispatch)
        return {"extracted_memories": extracted, "response": response, "trace": execution_trace.get_all()}

    # ========================================================================
    # Context branches (run in worker threads)
    # ========================================================================

    def _memory_branch(self, request: AgentRequest, now: datetime) -> Tuple[List[RetrievedMemory], BurnoutIndicator]:
        student_id = request.student_id
        today = now.date()
        tracker = self.quests.tracker
        burnout = self.burnout_monitor.assess(
            student_id,
            self.lane.memories(student_id),
            consecutive_missed_days=tracker.consecutive_missed_days(student_id, today),
            completion_rate_7d=tracker.completion_rate_7d(student_id, today),
            now=now,
        )
        memories = self.lane.retrieve(
            student_id,
            request.message,
            subject_filter=MemoryCatcher.detect_subject(request.message),
            burnout_risk=burnout.level,
            mastery=self.mastery.mastery_map(student_id),
            now=now,
        )
        return memories, burnout

    def _mastery_branch(self, student_id: str, today: date) -> Tuple[List[TopicMastery], List[str]]:
        return self.mastery.all_for_student(student_id), self.mastery.due_topics(student_id, today)

    def _quest_branch(self, request: AgentRequest, today: date) -> Tuple[Optional[TodayQuests], DelayAnalysis, Dict[str, Any]]:
        student_id = request.student_id
        if request.quest_context:
            today_quests = TodayQuests.from_dict(request.quest_context)
        else:
            today_quests = self.quests.today(student_id, today)
        return (
            today_quests,
            self.quests.delay_analysis(student_id, today),
            self.quests.tracker.weekly_stats(student_id, today),
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _build_context(self, state: SupervisorState, route: RouteDecision) -> AgentContext:
        memories = state.get("memories", [])
        due = state.get("due_topics", [])
        burnout = state["burnout"]
        mastery_summary = sorted(state.get("mastery_states", []), key=lambda m: (m.mastery, m.topic_id))
        mastery_summary = mastery_summary[:MAX_MASTERY_TOPICS]

        return AgentContext(
            profile=state["profile"],
            relevant_memories=memories,
            mastery_summary=mastery_summary,
            due_topics=due,
            today_quests=state.get("today_quests"),
            active_plans=state.get("active_plans", []),
            burnout=burnout,
            delay=state.get("delay"),
            weekly_stats=state.get("weekly_stats", {}),
            recent_history=state.get("recent_history", []),
            memory_block=self.injector.render(
                memories, mastery_summary, due, burnout,
                current_subject=MemoryCatcher.detect_subject(state["request"].message),
            ),
            complexity=route.complexity,
        )

    async def _attempt(self, agent: BaseAgent, request: AgentRequest, context: AgentContext,
                       attempt: int) -> DispatchResult:
        try:
            reply = await agent.process(request, context)
            execution_trace.add(agent.name, f"Replied (attempt {attempt})", "✅")
            return DispatchResult(kind=DispatchKind.SUCCESS, reply=reply, attempts=attempt)
        except PersistenceError:
            raise
        except (LLMError, MalformedAgentOutputError) as e:
            logger.warning(f"{agent.name} attempt {attempt} failed: {e}")
            return self._failed(agent, attempt, e)
        except Exception as e:
            logger.exception(f"{agent.name} attempt {attempt} raised unexpectedly")
            return self._failed(agent, attempt, e)

    @staticmethod
    def _failed(agent: BaseAgent, attempt: int, e: Exception) -> DispatchResult:
        execution_trace.add(agent.name, f"Attempt {attempt} failed: {type(e).__name__}", "⚠️")
        return DispatchResult(
            kind=DispatchKind.LLM_FAILURE,
            reply=AgentReply(message=""),
            attempts=attempt,
            errors=[f"{type(e).__name__}: {e}"],
        )

    @staticmethod
    def fallback_reply(route: RouteDecision, burnout: BurnoutIndicator) -> AgentReply:
        if burnout.level == BurnoutLevel.HIGH:
            message = REST_FALLBACK
        else:
            message = FALLBACK_MESSAGES[route.role]
        return AgentReply(message=message, suggested_follow_up=["오늘 뭐 공부해?"])

    def _apply_profile_updates(self, student_id: str, actions: List[Dict[str, Any]]) -> Optional[StudentProfile]:
        updates: Dict[str, Any] = {}
        for action in actions:
            if action.get("type") == "UPDATE_PROFILE":
                updates.update(action.get("data", {}))
        if not updates:
            return None

        profile = self.registry.require_student(student_id)
        if "enrolled_subjects" in updates:
            merged = list(profile.enrolled_subjects)
            for value in updates["enrolled_subjects"]:
                subject = Subject(value)
                if subject not in merged:
                    merged.append(subject)
            updates["enrolled_subjects"] = merged
        logger.info(f"Updating profile {student_id}: {sorted(updates)}")
        return self.registry.update_student(student_id, updates)

    def _write_transcript(self, conversation_id: str, request: AgentRequest,
                          route: RouteDecision, dispatch: DispatchResult):
        transcript = open_transcript(self.transcript_dir, conversation_id)
        if transcript is None:
            return
        transcript.log_turn("STUDENT", request.message)
        transcript.log_route(route.to_dict())
        for error in dispatch.errors:
            transcript.log_error(route.role.value, error)
        transcript.log_turn("COACH", dispatch.reply.message, agent_role=route.role.value)
