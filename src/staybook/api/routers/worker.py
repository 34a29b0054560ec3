"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from staybook.api.routes import tasks_bookings

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    return {"status": "ok", "subsystem": "tasks"}


@router.get("/internal/health")
def internal_health() -> dict:
    return {"status": "ok", "subsystem": "internal"}


router.include_router(tasks_bookings.router)
