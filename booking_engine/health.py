# booking_engine/health.py
from fastapi import APIRouter, Depends

from booking_engine.dependencies.services import get_background_jobs
from booking_engine.scheduler import BackgroundJobs

router = APIRouter()


@router.get("/health")
def health(jobs: BackgroundJobs = Depends(get_background_jobs)):
    return {"ok": True, "background_jobs_running": jobs.running, "jobs": jobs.status()}
