"""
Error taxonomy for the coaching engine.

DomainError subclasses signal a caller-side contract breach and are surfaced
to the caller. PersistenceError is fatal for the request. LLM and agent
errors are recoverable: the Supervisor retries once and then degrades to a
templated reply.
"""


class StudyCoachError(Exception):
    """Root of every error raised by the engine"""


# ===== Domain errors (caller contract breach) =====

class DomainError(StudyCoachError):
    pass


class NotFoundError(DomainError):
    pass


class QuestCompletedError(DomainError):
    def __init__(self, quest_id: str):
        super().__init__(f"Quest {quest_id} is already completed and cannot be rescheduled")
        self.quest_id = quest_id


class TopicNotInPlanError(DomainError):
    def __init__(self, student_id: str, topic_id: str):
        super().__init__(f"Topic '{topic_id}' is not part of any active plan for student {student_id}")
        self.student_id = student_id
        self.topic_id = topic_id


class InvalidQualityError(DomainError):
    def __init__(self, quality):
        super().__init__(f"Review quality must be an integer in [0, 5], got {quality!r}")
        self.quality = quality


class InvalidTransitionError(DomainError):
    pass


class StaleDecisionError(DomainError):
    """A reschedule decision that was never issued, was superseded, or no longer matches its quest"""


# ===== Fatal =====

class PersistenceError(StudyCoachError):
    pass


# ===== Recoverable (handled by the Supervisor) =====

class LLMError(StudyCoachError):
    pass


class LLMTimeoutError(LLMError):
    pass


class MalformedAgentOutputError(StudyCoachError):
    pass
