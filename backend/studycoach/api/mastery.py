# backend/studycoach/api/mastery.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import StudyCoachError
from studycoach.core.models import Subject

router = APIRouter()


class ReviewRequest(BaseModel):
    student_id: str
    topic_id: str
    quality: int
    subject: Subject = Subject.GENERAL
    today: Optional[date] = None


@router.post("/review")
async def record_review(req: ReviewRequest, container: Container = Depends(get_container)):
    """Record one graded review (quality 0-5) and return the updated SM-2 state"""
    try:
        async with container.locks.hold(req.student_id):
            state = container.mastery.record_review(
                req.student_id, req.topic_id, req.quality, today=req.today, subject=req.subject
            )
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "mastery": state.to_dict()}


@router.get("/{student_id}/due")
async def due_topics(student_id: str, as_of: Optional[date] = None,
                     container: Container = Depends(get_container)):
    try:
        as_of = as_of or date.today()
        due = container.mastery.due_topics(student_id, as_of)
        recommendations = container.mastery.recommendations(student_id, as_of)
    except StudyCoachError as e:
        raise http_error(e)
    return {"student_id": student_id, "as_of": as_of.isoformat(), "due_topics": due,
            "recommendations": recommendations}


@router.get("/{student_id}")
async def all_topics(student_id: str, container: Container = Depends(get_container)):
    try:
        topics = container.mastery.all_for_student(student_id)
        subjects = {
            s.value: container.mastery.subject_stats(student_id, s)
            for s in Subject if any(t.subject == s for t in topics)
        }
    except StudyCoachError as e:
        raise http_error(e)
    return {"student_id": student_id, "topics": [t.to_dict() for t in topics], "subjects": subjects}
