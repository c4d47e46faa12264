import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from matchengine.common.enums import CandidateStatus, Decision, RequestStatus, RoutingStatus, Urgency
from matchengine.common.exceptions import NotFoundError
from matchengine.common.logging import get_logger
from matchengine.config import settings
from matchengine.core.matching.decisions import DecisionRecorder
from matchengine.core.matching.router import MatchRouter
from matchengine.core.matching.schemas import RankedCandidate
from matchengine.core.matching.selector import select_candidates
from matchengine.core.matching.transitions import (
    advance_request,
    compare_and_set,
    is_terminal,
    release_capacity,
)
from matchengine.core.notifications.notifier import VendorNotifier
from matchengine.db.models.match import MatchCandidate, MatchRouting, VendorDecision
from matchengine.db.models.request import ServiceRequest

logger = get_logger("matching.service")

OPEN_STATUSES = [
    RequestStatus.PENDING.value,
    RequestStatus.MATCHED.value,
    RequestStatus.ROUTED.value,
]


class MatchEngineService:
    """Entry point for every match-engine action; one instance per unit of work."""

    def __init__(self, db: AsyncSession, notifier: VendorNotifier):
        self.db = db
        self.router = MatchRouter(db, notifier)
        self.recorder = DecisionRecorder(db, self.router)

    async def create_request(
        self,
        requester_id: uuid.UUID,
        service_category: str,
        budget: Decimal | None = None,
        urgency: Urgency = Urgency.MEDIUM,
        location: str | None = None,
        extra_requirements: dict | None = None,
    ) -> tuple[ServiceRequest, list[RankedCandidate], MatchRouting | None]:
        request = ServiceRequest(
            requester_id=requester_id,
            service_category=service_category,
            budget=budget,
            urgency=urgency.value,
            location=location,
            extra_requirements=extra_requirements or {},
            status=RequestStatus.PENDING.value,
        )
        self.db.add(request)
        await self.db.flush()
        await self.db.refresh(request)
        logger.info("Created request %s for %s (%s urgency)", request.id, service_category, urgency.value)

        ranked = await self._select_and_advance(request)

        routing = None
        if settings.AUTO_ROUTE_ON_CREATE and request.status == RequestStatus.MATCHED.value:
            routing = await self.router.route_next(request.id)

        return request, ranked, routing

    async def find_matches(self, request_id: uuid.UUID) -> tuple[ServiceRequest, list[RankedCandidate]]:
        request = await self.get_request(request_id)
        ranked = await self._select_and_advance(request)
        return request, ranked

    async def route_to_vendor(self, candidate_id: uuid.UUID) -> MatchRouting:
        return await self.router.route_candidate(candidate_id)

    async def route_next(self, request_id: uuid.UUID) -> MatchRouting | None:
        return await self.router.route_next(request_id)

    async def record_decision(
        self,
        routing_id: uuid.UUID,
        vendor_id: uuid.UUID,
        decision: Decision,
        response_message: str | None = None,
        estimated_delivery: str | None = None,
    ) -> tuple[VendorDecision, MatchRouting | None]:
        return await self.recorder.record_decision(
            routing_id, vendor_id, decision, response_message, estimated_delivery
        )

    async def get_request(self, request_id: uuid.UUID) -> ServiceRequest:
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Request", str(request_id))
        return request

    async def get_request_status(self, request_id: uuid.UUID) -> ServiceRequest:
        """Load the request with candidates, their routings and the routings' decisions."""
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.id == request_id)
            .options(
                selectinload(ServiceRequest.candidates)
                .selectinload(MatchCandidate.routings)
                .selectinload(MatchRouting.decisions)
            )
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Request", str(request_id))
        return request

    async def close_stale_requests(self, cutoff: datetime) -> list[uuid.UUID]:
        """Close open requests created before ``cutoff``, declining their open routings."""
        result = await self.db.execute(
            select(ServiceRequest).where(
                ServiceRequest.status.in_(OPEN_STATUSES),
                ServiceRequest.created_at < cutoff,
            )
        )
        stale = result.scalars().all()

        closed = []
        for request in stale:
            routings = await self.db.execute(
                select(MatchRouting)
                .join(MatchCandidate, MatchRouting.match_candidate_id == MatchCandidate.id)
                .where(
                    MatchCandidate.request_id == request.id,
                    MatchRouting.status == RoutingStatus.ROUTED.value,
                )
            )
            for routing in routings.scalars().all():
                if await compare_and_set(
                    self.db, MatchRouting, routing.id, RoutingStatus.ROUTED.value,
                    status=RoutingStatus.DECLINED.value,
                ):
                    await compare_and_set(
                        self.db, MatchCandidate, routing.match_candidate_id, CandidateStatus.ROUTED.value,
                        status=CandidateStatus.DECLINED.value,
                    )
                    await release_capacity(self.db, routing.vendor_id)

            request.open_routing_id = None
            advance_request(request, RequestStatus.CLOSED)
            closed.append(request.id)

        if closed:
            await self.db.flush()
            logger.info("Closed %d stale requests", len(closed))
        return closed

    async def _select_and_advance(self, request: ServiceRequest) -> list[RankedCandidate]:
        ranked = await select_candidates(request, self.db, persist=not is_terminal(request))

        if request.status == RequestStatus.PENDING.value:
            stored = any(c.candidate_id is not None for c in ranked)
            advance_request(request, RequestStatus.MATCHED if stored else RequestStatus.CLOSED)
            await self.db.flush()
            if not stored:
                logger.info("Request %s closed: no eligible vendors", request.id)
        return ranked
