# backend/studycoach/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studycoach.api import coach, mastery, progress, quests, reschedule, students
from studycoach.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Study Coach - Memory-aware Coaching Engine",
    description="Intent-routed coaching agents with Memory Lane, SM-2 mastery, burnout monitoring and adaptive quests",
    version="1.0.0",
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(coach.router, prefix="/coach", tags=["coach"])
app.include_router(reschedule.router, prefix="/reschedule", tags=["reschedule"])
app.include_router(mastery.router, prefix="/mastery", tags=["mastery"])
app.include_router(progress.router, prefix="/progress", tags=["progress"])
app.include_router(quests.router, prefix="/quests", tags=["quests"])
app.include_router(students.router, prefix="/students", tags=["students"])


@app.get("/")
async def root():
    return {
        "message": "Study Coach - Memory-aware Coaching Engine",
        "version": "1.0.0",
        "endpoints": {
            "coach": "/coach/chat - Route a student message to the right agent",
            "reschedule": "/reschedule/evaluate, /reschedule/apply - Adaptive reschedule",
            "mastery": "/mastery/review, /mastery/{student_id}/due - SM-2 reviews",
            "progress": "/progress/{student_id} - Burnout, weekly stats and delay analysis",
            "quests": "/quests/{student_id}/generate, /quests/{student_id}/{quest_id}/complete",
            "students": "/students, /students/{student_id}/plans",
        }
    }
