"""Request state machine and conditional-update helpers.

Every check-then-act step in the engine goes through ``compare_and_set`` or
the capacity helpers: a single ``UPDATE ... WHERE`` whose row count decides
which concurrent handler won.
"""

import uuid

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.common.enums import RequestStatus
from matchengine.common.exceptions import ConflictError
from matchengine.common.logging import get_logger
from matchengine.db.base import BaseModel
from matchengine.db.models.request import ServiceRequest
from matchengine.db.models.vendor import Vendor

logger = get_logger("matching.transitions")

REQUEST_TRANSITIONS: dict[str, set[str]] = {
    RequestStatus.PENDING.value: {
        RequestStatus.MATCHED.value,
        RequestStatus.ROUTED.value,
        RequestStatus.CLOSED.value,
    },
    RequestStatus.MATCHED.value: {RequestStatus.ROUTED.value, RequestStatus.CLOSED.value},
    RequestStatus.ROUTED.value: {RequestStatus.FULFILLED.value, RequestStatus.CLOSED.value},
    RequestStatus.FULFILLED.value: set(),
    RequestStatus.CLOSED.value: set(),
}

TERMINAL_STATUSES = {RequestStatus.FULFILLED.value, RequestStatus.CLOSED.value}


class InvalidTransitionError(ConflictError):
    def __init__(self, request_id: uuid.UUID, current: str, target: str):
        super().__init__(f"Request '{request_id}' cannot move from {current} to {target}")


class RequestBusyError(ConflictError):
    def __init__(self, request_id: uuid.UUID):
        super().__init__(f"Request '{request_id}' is awaiting a vendor decision")


def is_terminal(request: ServiceRequest) -> bool:
    return request.status in TERMINAL_STATUSES


def advance_request(request: ServiceRequest, target: RequestStatus) -> ServiceRequest:
    current = RequestStatus(request.status).value
    if current == target.value:
        return request
    if target.value not in REQUEST_TRANSITIONS[current]:
        raise InvalidTransitionError(request.id, current, target.value)

    request.status = target.value
    logger.info("Request %s: %s -> %s", request.id, current, target.value)
    return request


async def compare_and_set(
    db: AsyncSession, model: type[BaseModel], row_id: uuid.UUID, expected_status: str, **values
) -> bool:
    """Update ``row_id`` only while its status still equals ``expected_status``."""
    result = await db.execute(
        update(model)
        .where(model.id == row_id, model.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    instance = await db.get(model, row_id)
    if instance is not None:
        await db.refresh(instance, attribute_names=list(values))
    return True


async def claim_capacity(db: AsyncSession, vendor_id: uuid.UUID, capacity_limit: int) -> bool:
    result = await db.execute(
        update(Vendor)
        .where(Vendor.id == vendor_id, Vendor.in_flight_count < capacity_limit)
        .values(in_flight_count=Vendor.in_flight_count + 1)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if not claimed:
        logger.info("Vendor %s has no free capacity (limit %d)", vendor_id, capacity_limit)
    return claimed


async def release_capacity(db: AsyncSession, vendor_id: uuid.UUID) -> bool:
    result = await db.execute(
        update(Vendor)
        .where(Vendor.id == vendor_id, Vendor.in_flight_count > 0)
        .values(in_flight_count=Vendor.in_flight_count - 1)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if not released:
        logger.warning("Vendor %s had no in-flight slot to release", vendor_id)
    return released


async def claim_request(db: AsyncSession, request: ServiceRequest) -> uuid.UUID:
    """Reserve the request's single open-routing slot.

    Returns the id the new routing must use. Raises ``RequestBusyError`` when
    another routing holds the slot, ``ConflictError`` when the request is
    already terminal.
    """
    routing_id = uuid.uuid4()
    result = await db.execute(
        update(ServiceRequest)
        .where(
            ServiceRequest.id == request.id,
            ServiceRequest.open_routing_id.is_(None),
            ServiceRequest.status.not_in(sorted(TERMINAL_STATUSES)),
        )
        .values(open_routing_id=routing_id)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    await db.refresh(request, attribute_names=["status", "open_routing_id"])
    if not claimed:
        if is_terminal(request):
            raise ConflictError(f"Request '{request.id}' is already {request.status}")
        raise RequestBusyError(request.id)
    return routing_id


async def release_request(db: AsyncSession, request: ServiceRequest, routing_id: uuid.UUID) -> bool:
    result = await db.execute(
        update(ServiceRequest)
        .where(ServiceRequest.id == request.id, ServiceRequest.open_routing_id == routing_id)
        .values(open_routing_id=None)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if not released:
        logger.warning("Request %s did not hold routing %s", request.id, routing_id)
    await db.refresh(request, attribute_names=["open_routing_id"])
    return released
