import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from matchengine.common.enums import (
    CandidateStatus,
    Decision,
    RequestStatus,
    RoutingMethod,
    RoutingStatus,
    Urgency,
)
from matchengine.common.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from matchengine.core.matching.service import MatchEngineService
from matchengine.core.matching.transitions import RequestBusyError
from matchengine.db.models.match import MatchCandidate, MatchRouting, VendorDecision
from matchengine.db.models.request import ServiceRequest

from conftest import FailingNotifier


async def _routing_count(db_session, request_id) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(MatchRouting)
        .join(MatchCandidate, MatchRouting.match_candidate_id == MatchCandidate.id)
        .where(MatchCandidate.request_id == request_id)
    )
    return result.scalar_one()


async def _candidate_for(db_session, request_id, vendor_id) -> MatchCandidate:
    result = await db_session.execute(
        select(MatchCandidate)
        .where(MatchCandidate.request_id == request_id, MatchCandidate.vendor_id == vendor_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_end_to_end_routes_territory_vendor_first(service, db_session, make_vendor, notifier):
    vendor_x, _ = await make_vendor(
        "VendorX", min_budget=Decimal("0"), max_budget=Decimal("1000"), locations=["TX"], capacity=1
    )
    vendor_y, _ = await make_vendor("VendorY", min_budget=Decimal("0"), max_budget=Decimal("2000"), capacity=5)

    request, ranked, _ = await service.create_request(
        requester_id=uuid.uuid4(),
        service_category="crm",
        budget=Decimal("500"),
        urgency=Urgency.HIGH,
        location="TX",
    )

    assert [(c.vendor_name, c.match_score) for c in ranked] == [("VendorX", 90), ("VendorY", 75)]
    assert request.status == RequestStatus.MATCHED.value

    routing = await service.route_next(request.id)

    assert routing.vendor_id == vendor_x.id
    assert routing.routing_method == RoutingMethod.AUTOMATIC.value
    assert request.status == RequestStatus.ROUTED.value
    assert request.open_routing_id == routing.id
    assert notifier.routed == [routing.id]

    await db_session.refresh(vendor_x)
    assert vendor_x.in_flight_count == 1


@pytest.mark.asyncio
async def test_decline_falls_back_down_the_ranking_then_closes(service, db_session, make_vendor):
    vendor_a, _ = await make_vendor("A", priority=90)
    vendor_b, _ = await make_vendor("B", priority=70)
    vendor_c, _ = await make_vendor("C", priority=50)
    request, ranked, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    assert [c.match_score for c in ranked] == [90, 70, 50]

    routing_a = await service.route_next(request.id)
    assert routing_a.vendor_id == vendor_a.id

    _, routing_b = await service.record_decision(routing_a.id, vendor_a.id, Decision.DECLINE, "Fully booked")
    assert routing_b.vendor_id == vendor_b.id

    _, routing_c = await service.record_decision(routing_b.id, vendor_b.id, Decision.DECLINE)
    assert routing_c.vendor_id == vendor_c.id

    _, routing_none = await service.record_decision(routing_c.id, vendor_c.id, Decision.DECLINE)
    assert routing_none is None

    request = await service.get_request(request.id)
    assert request.status == RequestStatus.CLOSED.value
    assert await _routing_count(db_session, request.id) == 3

    for vendor in (vendor_a, vendor_b, vendor_c):
        await db_session.refresh(vendor)
        assert vendor.in_flight_count == 0
        candidate = await _candidate_for(db_session, request.id, vendor.id)
        assert candidate.status == CandidateStatus.DECLINED.value


@pytest.mark.asyncio
async def test_accept_terminates_the_chain(service, db_session, make_vendor):
    vendor_a, _ = await make_vendor("A", priority=80)
    await make_vendor("B", priority=60)
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    routing = await service.route_next(request.id)
    decision, next_routing = await service.record_decision(
        routing.id, vendor_a.id, Decision.ACCEPT, "On it", "3 days"
    )

    assert next_routing is None
    assert decision.decision == Decision.ACCEPT.value
    assert decision.estimated_delivery == "3 days"

    request = await service.get_request(request.id)
    assert request.status == RequestStatus.FULFILLED.value

    with pytest.raises(ConflictError):
        await service.route_next(request.id)
    assert await _routing_count(db_session, request.id) == 1

    await db_session.refresh(routing)
    assert routing.status == RoutingStatus.ACCEPTED.value
    assert routing.vendor_response_at is not None
    await db_session.refresh(vendor_a)
    assert vendor_a.in_flight_count == 1


@pytest.mark.asyncio
async def test_second_decision_on_same_routing_conflicts(service, db_session, make_vendor):
    vendor_a, _ = await make_vendor("A", priority=80)
    await make_vendor("B", priority=60)
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    routing = await service.route_next(request.id)

    await service.record_decision(routing.id, vendor_a.id, Decision.DECLINE)
    with pytest.raises(ConflictError):
        await service.record_decision(routing.id, vendor_a.id, Decision.DECLINE)

    decisions = await db_session.execute(
        select(func.count()).select_from(VendorDecision).where(VendorDecision.routing_id == routing.id)
    )
    assert decisions.scalar_one() == 1
    # Only the winning decline advanced the request
    assert await _routing_count(db_session, request.id) == 2


@pytest.mark.asyncio
async def test_decision_from_other_vendor_is_rejected(service, make_vendor):
    await make_vendor("A")
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    routing = await service.route_next(request.id)

    with pytest.raises(PermissionDeniedError):
        await service.record_decision(routing.id, uuid.uuid4(), Decision.ACCEPT)


@pytest.mark.asyncio
async def test_unknown_ids_raise_not_found(service):
    with pytest.raises(NotFoundError):
        await service.route_next(uuid.uuid4())
    with pytest.raises(NotFoundError):
        await service.route_to_vendor(uuid.uuid4())
    with pytest.raises(NotFoundError):
        await service.record_decision(uuid.uuid4(), uuid.uuid4(), Decision.ACCEPT)


@pytest.mark.asyncio
async def test_last_capacity_slot_goes_to_one_request(service, db_session, make_vendor):
    solo, _ = await make_vendor("Solo", capacity=1)
    first, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    second, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    assert second.status == RequestStatus.MATCHED.value

    assert (await service.route_next(first.id)).vendor_id == solo.id
    assert await service.route_next(second.id) is None

    skipped = await _candidate_for(db_session, second.id, solo.id)
    assert skipped.status == CandidateStatus.SKIPPED.value
    second = await service.get_request(second.id)
    assert second.status == RequestStatus.CLOSED.value

    await db_session.refresh(solo)
    assert solo.in_flight_count == 1


@pytest.mark.asyncio
async def test_manual_route_to_specific_candidate(service, db_session, make_vendor):
    await make_vendor("Top", priority=90)
    second_best, _ = await make_vendor("Second", priority=60)
    request, ranked, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    routing = await service.route_to_vendor(ranked[1].candidate_id)

    assert routing.vendor_id == second_best.id
    assert routing.routing_method == RoutingMethod.MANUAL.value

    # One open routing per request
    with pytest.raises(ConflictError):
        await service.route_to_vendor(ranked[0].candidate_id)
    with pytest.raises(ConflictError):
        await service.route_next(request.id)
    # Already routed candidate
    with pytest.raises(ConflictError):
        await service.route_to_vendor(ranked[1].candidate_id)


@pytest.mark.asyncio
async def test_no_eligible_vendor_closes_request(service, db_session, make_vendor):
    await make_vendor("Plumber", categories=("plumbing",))

    request, ranked, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    assert ranked == []
    assert request.status == RequestStatus.CLOSED.value
    assert await _routing_count(db_session, request.id) == 0


@pytest.mark.asyncio
async def test_notification_failure_keeps_routing(db_session, make_vendor):
    vendor, _ = await make_vendor("A")
    service = MatchEngineService(db_session, FailingNotifier())
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    routing = await service.route_next(request.id)

    assert routing.vendor_id == vendor.id
    assert routing.status == RoutingStatus.ROUTED.value
    assert request.status == RequestStatus.ROUTED.value


@pytest.mark.asyncio
async def test_auto_route_on_create(service, make_vendor, notifier, monkeypatch):
    from matchengine.config import settings

    monkeypatch.setattr(settings, "AUTO_ROUTE_ON_CREATE", True)
    vendor, _ = await make_vendor("A")

    request, _, routing = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    assert routing is not None
    assert routing.vendor_id == vendor.id
    assert request.status == RequestStatus.ROUTED.value
    assert notifier.routed == [routing.id]


@pytest.mark.asyncio
async def test_stale_requests_are_closed_and_capacity_released(service, db_session, make_vendor):
    vendor, _ = await make_vendor("A", capacity=2)
    stale, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    routing = await service.route_next(stale.id)
    fresh, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")

    stale.created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    await db_session.flush()

    closed = await service.close_stale_requests(datetime.now(timezone.utc) - timedelta(hours=72))

    assert closed == [stale.id]
    await db_session.refresh(stale)
    await db_session.refresh(fresh)
    await db_session.refresh(routing)
    await db_session.refresh(vendor)
    assert stale.status == RequestStatus.CLOSED.value
    assert fresh.status == RequestStatus.MATCHED.value
    assert routing.status == RoutingStatus.DECLINED.value
    assert vendor.in_flight_count == 0
    assert stale.open_routing_id is None


@pytest.mark.asyncio
async def test_decline_is_kept_when_request_was_closed_meanwhile(service, db_session, make_vendor):
    vendor_a, _ = await make_vendor("A", priority=80)
    vendor_b, _ = await make_vendor("B", priority=60)
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    routing = await service.route_next(request.id)

    await db_session.execute(
        update(ServiceRequest).where(ServiceRequest.id == request.id).values(status=RequestStatus.CLOSED.value)
    )

    decision, next_routing = await service.record_decision(routing.id, vendor_a.id, Decision.DECLINE)

    assert next_routing is None
    assert decision.decision == Decision.DECLINE.value
    await db_session.refresh(routing)
    await db_session.refresh(vendor_a)
    assert routing.status == RoutingStatus.DECLINED.value
    assert vendor_a.in_flight_count == 0
    untouched = await _candidate_for(db_session, request.id, vendor_b.id)
    assert untouched.status == CandidateStatus.PENDING.value


@pytest.mark.asyncio
async def test_decline_is_kept_when_request_is_held_by_another_routing(service, db_session, make_vendor):
    vendor_a, _ = await make_vendor("A", priority=80)
    await make_vendor("B", priority=60)
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    routing = await service.route_next(request.id)

    # Another handler took the slot between the routing and the decision
    await db_session.execute(
        update(ServiceRequest).where(ServiceRequest.id == request.id).values(open_routing_id=uuid.uuid4())
    )

    decision, next_routing = await service.record_decision(routing.id, vendor_a.id, Decision.DECLINE)

    assert next_routing is None
    assert decision.routing_id == routing.id
    assert await _routing_count(db_session, request.id) == 1
    await db_session.refresh(vendor_a)
    assert vendor_a.in_flight_count == 0


@pytest.mark.asyncio
async def test_route_next_on_busy_request_raises_busy(service, make_vendor):
    await make_vendor("A", priority=80)
    await make_vendor("B", priority=60)
    request, _, _ = await service.create_request(requester_id=uuid.uuid4(), service_category="crm")
    await service.route_next(request.id)

    with pytest.raises(RequestBusyError):
        await service.route_next(request.id)
