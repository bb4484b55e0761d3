# backend/studycoach/api/deps.py
"""
Wiring of every engine component behind the HTTP routers.
One Container per process; tests swap it through app.dependency_overrides.
"""

import logging
from typing import Optional

from fastapi import HTTPException

from studycoach.agents.table import build_agent_table
from studycoach.core.config import Settings, settings as default_settings
from studycoach.core.errors import (
    DomainError, InvalidQualityError, NotFoundError, PersistenceError, StudyCoachError, TopicNotInPlanError
)
from studycoach.core.locks import StudentLocks
from studycoach.core.registry import StudentRegistry
from studycoach.core.storage import Repository, build_repository
from studycoach.llm.client import LLMClient
from studycoach.memory.burnout import BurnoutMonitor
from studycoach.memory.injector import ContextInjector
from studycoach.memory.lane import MemoryLane
from studycoach.memory.mastery import MasteryManager
from studycoach.memory.pattern_cache import ReviewPatternCache
from studycoach.memory.retriever import MemoryRetriever, RerankWeights
from studycoach.memory.store import MemoryStore
from studycoach.orchestrator.history import ConversationHistory
from studycoach.orchestrator.supervisor import Supervisor
from studycoach.quest.rescheduler import AdaptiveRescheduler
from studycoach.quest.service import QuestService
from studycoach.quest.store import QuestStore
from studycoach.quest.tracker import QuestTracker

logger = logging.getLogger(__name__)


class Container:
    def __init__(self, settings: Settings, repository: Optional[Repository] = None,
                 llm: Optional[LLMClient] = None):
        self.settings = settings
        self.repository = repository or build_repository(settings.STORAGE_BACKEND)
        self.locks = StudentLocks()

        self.registry = StudentRegistry(self.repository)
        self.mastery = MasteryManager(
            self.repository,
            topic_guard=self.registry.active_topic_ids,
            max_interval_days=settings.MASTERY_MAX_INTERVAL_DAYS,
        )
        self.lane = MemoryLane(
            MemoryStore(self.repository, max_per_student=settings.MEMORY_MAX_PER_STUDENT),
            retriever=MemoryRetriever(
                weights=RerankWeights.from_list(settings.RERANK_WEIGHTS),
                top_k=settings.MEMORY_TOP_K,
                char_budget=settings.MEMORY_CHAR_BUDGET,
                low_importance_window_days=settings.MEMORY_LOW_IMPORTANCE_WINDOW_DAYS,
            ),
            pattern_cache=ReviewPatternCache(ttl_seconds=settings.PATTERN_CACHE_TTL_SECONDS),
        )
        self.burnout_monitor = BurnoutMonitor()

        self.quest_store = QuestStore(self.repository)
        self.tracker = QuestTracker(self.quest_store, self.locks)
        self.quests = QuestService(self.registry, self.quest_store, self.tracker, self.mastery)
        self.rescheduler = AdaptiveRescheduler(self.locks, self.repository)

        self.llm = llm or LLMClient.from_settings(settings)
        self.supervisor = Supervisor(
            registry=self.registry,
            lane=self.lane,
            mastery=self.mastery,
            burnout_monitor=self.burnout_monitor,
            quests=self.quests,
            rescheduler=self.rescheduler,
            agents=build_agent_table(self.llm),
            history=ConversationHistory(self.repository),
            injector=ContextInjector(char_budget=settings.MEMORY_CHAR_BUDGET * 2),
            locks=self.locks,
            transcript_dir=settings.TRANSCRIPT_DIR,
        )
        logger.info(f"Container ready (storage={settings.STORAGE_BACKEND})")


_container: Optional[Container] = None


def get_container() -> Container:
    """Get or create the process-wide container"""
    global _container
    if _container is None:
        _container = Container(default_settings)
    return _container


def http_error(error: StudyCoachError) -> HTTPException:
    """Translate an engine error into the HTTP status the routers return"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidQualityError, TopicNotInPlanError)):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, DomainError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, PersistenceError):
        logger.error(f"Persistence failure: {error}")
        return HTTPException(status_code=503, detail="Storage is unavailable")
    logger.error(f"Unhandled engine error: {error}")
    return HTTPException(status_code=500, detail=str(error))
