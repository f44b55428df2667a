"""Journaling API routers.

- questions: answer validation and next-question generation
- profile_memory: end-of-session profile updates
- summaries: end-of-session headline and bullets
"""

from fastapi import APIRouter

from reflect.routers.api import profile_memory, questions, summaries

router = APIRouter(responses={404: {"description": "Not found"}})

router.include_router(questions.router)
router.include_router(profile_memory.router)
router.include_router(summaries.router)

__all__ = ["router"]
