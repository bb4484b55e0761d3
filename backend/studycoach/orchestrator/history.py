"""
Conversation history per student, capped to the most recent turns
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from studycoach.core.storage import Repository

MAX_TURNS = 50


class ConversationHistory:

    def __init__(self, repository: Repository, max_turns: int = MAX_TURNS):
        self.repo = repository
        self.max_turns = max_turns

    def recent(self, student_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        turns = self.repo.get(f"history:{student_id}") or []
        return turns[-limit:] if limit else turns

    def append_exchange(self, student_id: str, user_message: str, reply: str,
                        agent_role: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        timestamp = (now or datetime.now()).isoformat()
        turns = self.recent(student_id)
        turns.append({"role": "user", "content": user_message, "timestamp": timestamp})
        turns.append({"role": "assistant", "content": reply, "agent_role": agent_role, "timestamp": timestamp})
        turns = turns[-self.max_turns:]
        self.repo.put(f"history:{student_id}", turns)
        return turns

    def clear(self, student_id: str) -> None:
        self.repo.delete(f"history:{student_id}")
