from fastapi import APIRouter, Depends

from booking_engine.dependencies.services import get_lock_manager
from booking_engine.routes.errors import service_error_to_http
from booking_engine.schemas.booking import SlotLock, SlotLockRequest
from booking_engine.services import LockManager
from booking_engine.services.exceptions import ServiceError

router = APIRouter()


@router.post("", response_model=SlotLock, status_code=201)
async def acquire_lock(
    req: SlotLockRequest,
    locks: LockManager = Depends(get_lock_manager),
):
    try:
        return await locks.acquire_lock(req.service_id, req.slot_at, req.holder_id, req.ttl_minutes)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{lock_id}", response_model=SlotLock)
async def get_lock(
    lock_id: str,
    locks: LockManager = Depends(get_lock_manager),
):
    try:
        return await locks.get_lock(lock_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.delete("/{lock_id}", response_model=SlotLock)
async def release_lock(
    lock_id: str,
    locks: LockManager = Depends(get_lock_manager),
):
    try:
        return await locks.release_lock(lock_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc
