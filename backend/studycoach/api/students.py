# backend/studycoach/api/students.py
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import StudyCoachError
from studycoach.core.models import Subject

router = APIRouter()


class CreateStudentRequest(BaseModel):
    name: str
    student_id: Optional[str] = None
    grade: str = "미설정"
    target_exam: Optional[str] = None
    enrolled_subjects: List[Subject] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)


class UnitRequest(BaseModel):
    title: str
    estimated_minutes: int = 30
    topic_id: Optional[str] = None


class CreatePlanRequest(BaseModel):
    subject: Subject
    title: str
    start_date: date
    end_date: date
    units: List[UnitRequest]
    daily_minutes: int = 60
    exclude_weekends: bool = False
    hard_end_date: Optional[date] = None


class ImportMemoriesRequest(BaseModel):
    records: List[Dict[str, Any]]


@router.post("")
async def create_student(req: CreateStudentRequest, container: Container = Depends(get_container)):
    try:
        if req.student_id and container.registry.get_student(req.student_id):
            raise HTTPException(status_code=409, detail=f"Student {req.student_id} already exists")
        profile = container.registry.create_student(
            name=req.name,
            student_id=req.student_id,
            grade=req.grade,
            target_exam=req.target_exam,
            enrolled_subjects=req.enrolled_subjects,
            goals=req.goals,
        )
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "student": profile.to_dict()}


@router.get("/{student_id}")
async def get_student(student_id: str, container: Container = Depends(get_container)):
    try:
        profile = container.registry.require_student(student_id)
        plans = container.registry.get_plans(student_id)
    except StudyCoachError as e:
        raise http_error(e)
    return {"student": profile.to_dict(), "plans": [p.to_dict() for p in plans]}


@router.post("/{student_id}/plans")
async def create_plan(student_id: str, req: CreatePlanRequest, container: Container = Depends(get_container)):
    """Create a plan and lay its units out as dated quests"""
    if not req.units:
        raise HTTPException(status_code=422, detail="A plan needs at least one unit")
    try:
        async with container.locks.hold(student_id):
            plan = container.registry.create_plan(
                student_id,
                subject=req.subject,
                title=req.title,
                start_date=req.start_date,
                end_date=req.end_date,
                unit_titles=[u.title for u in req.units],
                daily_minutes=req.daily_minutes,
                exclude_weekends=req.exclude_weekends,
                hard_end_date=req.hard_end_date,
                unit_minutes=[u.estimated_minutes for u in req.units],
                topic_ids=[u.topic_id or u.title for u in req.units],
            )
            quests = container.quests.ensure_plan_quests(plan)
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "plan": plan.to_dict(), "quest_count": len(quests)}


@router.get("/{student_id}/memories")
async def export_memories(student_id: str, container: Container = Depends(get_container)):
    try:
        records = container.lane.export(student_id)
    except StudyCoachError as e:
        raise http_error(e)
    return {"student_id": student_id, "records": records}


@router.post("/{student_id}/memories/import")
async def import_memories(student_id: str, req: ImportMemoriesRequest,
                          container: Container = Depends(get_container)):
    try:
        added = container.lane.import_records(student_id, req.records)
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "imported": added}
