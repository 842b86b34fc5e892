from datetime import date

from fastapi import APIRouter, Depends, Query

from booking_engine.dependencies.services import get_catalog, get_slot_generator
from booking_engine.routes.errors import service_error_to_http
from booking_engine.schemas.booking import SlotListResponse
from booking_engine.schemas.catalog import Service, ServiceCreateRequest, ServiceUpdateRequest
from booking_engine.services import ServiceCatalog, SlotGenerator
from booking_engine.services.exceptions import ServiceError

router = APIRouter()


@router.post("", response_model=Service, status_code=201)
async def create_service(
    req: ServiceCreateRequest,
    catalog: ServiceCatalog = Depends(get_catalog),
):
    try:
        return await catalog.create_service(req)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{service_id}", response_model=Service)
async def get_service(
    service_id: str,
    catalog: ServiceCatalog = Depends(get_catalog),
):
    try:
        return await catalog.get_service(service_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.patch("/{service_id}", response_model=Service)
async def update_service(
    service_id: str,
    req: ServiceUpdateRequest,
    catalog: ServiceCatalog = Depends(get_catalog),
):
    try:
        return await catalog.update_service(service_id, req)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{service_id}/slots", response_model=SlotListResponse)
async def list_slots(
    service_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    slots: SlotGenerator = Depends(get_slot_generator),
):
    try:
        items = await slots.generate_slots(service_id, start_date, end_date)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc
    return SlotListResponse(service_id=service_id, start_date=start_date, end_date=end_date, slots=items)
