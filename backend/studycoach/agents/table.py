from typing import Dict

from studycoach.agents.admission import AdmissionAgent
from studycoach.agents.analyst import AnalystAgent
from studycoach.agents.base import AgentRole, BaseAgent
from studycoach.agents.coach import CoachAgent
from studycoach.agents.planner import PlannerAgent
from studycoach.llm.client import LLMClient


def build_agent_table(llm: LLMClient) -> Dict[AgentRole, BaseAgent]:
    """One agent per role, sharing a single LLM client"""
    return {
        AgentRole.ADMISSION: AdmissionAgent(llm),
        AgentRole.PLANNER: PlannerAgent(llm),
        AgentRole.COACH: CoachAgent(llm),
        AgentRole.ANALYST: AnalystAgent(llm),
    }
