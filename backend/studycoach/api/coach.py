# backend/studycoach/api/coach.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from studycoach.agents.base import AgentRequest
from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import StudyCoachError

router = APIRouter()


class ChatRequest(BaseModel):
    student_id: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    quest_context: Optional[Dict[str, Any]] = None
    conversation_id: Optional[str] = None


@router.post("/chat")
async def chat(req: ChatRequest, container: Container = Depends(get_container)):
    """Route one student message through the supervisor"""
    if not req.message.strip():
        raise HTTPException(status_code=422, detail="Message must not be empty")

    request = AgentRequest(
        student_id=req.student_id,
        message=req.message,
        metadata=req.metadata,
        quest_context=req.quest_context,
        conversation_id=req.conversation_id,
    )
    try:
        response = await container.supervisor.handle(request)
    except StudyCoachError as e:
        raise http_error(e)
    return response.to_dict()


@router.get("/{student_id}/history")
async def get_history(student_id: str, limit: int = 20, container: Container = Depends(get_container)):
    try:
        turns = container.supervisor.history.recent(student_id, limit)
    except StudyCoachError as e:
        raise http_error(e)
    return {"student_id": student_id, "turns": turns}
