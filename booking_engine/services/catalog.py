from __future__ import annotations

import logging

from booking_engine.schemas.catalog import Entity, Service, ServiceCreateRequest, ServiceUpdateRequest
from booking_engine.services.clock import Clock
from booking_engine.services.exceptions import ServiceNotFound
from booking_engine.services.ids import IdGenerator
from booking_engine.services.record_store import ENTITIES, SERVICES, RecordStore

logger = logging.getLogger(__name__)


class ServiceCatalog:
    """Administrative access to bookable services."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Clock,
        ids: IdGenerator,
        default_timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._clock = clock
        self._ids = ids
        self._default_timezone = default_timezone

    async def create_service(self, request: ServiceCreateRequest) -> Service:
        now = self._clock.now()
        payload = request.model_dump()
        payload["timezone"] = request.timezone or self._default_timezone
        service = Service(
            id=self._ids.new_id("srv"),
            created_at=now,
            updated_at=now,
            **payload,
        )
        await self._store.create(SERVICES, service.model_dump())
        logger.info("Created service %s (%s) for entity %s", service.id, service.name, service.entity_id)
        return service

    async def get_service(self, service_id: str) -> Service:
        record = await self._store.find_by_id(SERVICES, service_id)
        if record is None:
            raise ServiceNotFound(service_id)
        return Service.model_validate(record)

    async def update_service(self, service_id: str, request: ServiceUpdateRequest) -> Service:
        current = await self.get_service(service_id)
        changes = request.model_dump(exclude_unset=True)
        merged = Service.model_validate(
            {**current.model_dump(), **changes, "updated_at": self._clock.now()}
        )
        record = await self._store.update(SERVICES, service_id, merged.model_dump())
        logger.info("Updated service %s fields %s", service_id, sorted(changes))
        return Service.model_validate(record)

    async def get_entity(self, entity_id: str) -> Entity:
        record = await self._store.find_by_id(ENTITIES, entity_id)
        if record is None:
            return Entity(id=entity_id, name=entity_id)
        return Entity.model_validate(record)
