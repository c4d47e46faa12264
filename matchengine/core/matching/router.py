import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.common.enums import CandidateStatus, RequestStatus, RoutingMethod, RoutingStatus
from matchengine.common.exceptions import ConflictError, NotFoundError
from matchengine.common.logging import get_logger
from matchengine.core.matching.transitions import (
    advance_request,
    claim_capacity,
    claim_request,
    compare_and_set,
    is_terminal,
    release_request,
)
from matchengine.core.notifications.notifier import VendorNotifier
from matchengine.db.models.match import MatchCandidate, MatchRouting
from matchengine.db.models.request import ServiceRequest

logger = get_logger("matching.router")


class MatchRouter:
    """Offers candidates to vendors, one open routing per request at a time.

    The open-routing slot lives on the request row and is taken with a
    conditional update, so concurrent handlers can never route the same
    request twice.
    """

    def __init__(self, db: AsyncSession, notifier: VendorNotifier):
        self.db = db
        self.notifier = notifier

    async def route_next(self, request_id: uuid.UUID) -> MatchRouting | None:
        """Route the best pending candidate, or close the request when none is left.

        Candidates whose vendor ran out of capacity since selection are marked
        skipped and the loop moves on to the next one.
        """
        request = await self._get_request(request_id)
        self._ensure_routable(request)
        routing_id = await claim_request(self.db, request)

        while True:
            candidate = await self._next_pending(request.id)
            if candidate is None:
                await release_request(self.db, request, routing_id)
                advance_request(request, RequestStatus.CLOSED)
                await self.db.flush()
                logger.info("Request %s closed: no routable candidates left", request.id)
                return None

            routing = await self._route(request, candidate, RoutingMethod.AUTOMATIC, routing_id)
            if routing is not None:
                return routing

    async def route_candidate(
        self, candidate_id: uuid.UUID, method: RoutingMethod = RoutingMethod.MANUAL
    ) -> MatchRouting:
        result = await self.db.execute(
            select(MatchCandidate)
            .where(MatchCandidate.id == candidate_id)
            .execution_options(populate_existing=True)
        )
        candidate = result.scalar_one_or_none()
        if not candidate:
            raise NotFoundError("Match candidate", str(candidate_id))
        if candidate.status != CandidateStatus.PENDING.value:
            raise ConflictError(f"Match candidate '{candidate_id}' is {candidate.status}, not pending")

        request = await self._get_request(candidate.request_id)
        self._ensure_routable(request)
        routing_id = await claim_request(self.db, request)

        routing = await self._route(request, candidate, method, routing_id)
        if routing is None:
            await release_request(self.db, request, routing_id)
            raise ConflictError(f"Match candidate '{candidate_id}' could not be routed")
        return routing

    async def _route(
        self,
        request: ServiceRequest,
        candidate: MatchCandidate,
        method: RoutingMethod,
        routing_id: uuid.UUID,
    ) -> MatchRouting | None:
        if not await compare_and_set(
            self.db, MatchCandidate, candidate.id, CandidateStatus.PENDING.value,
            status=CandidateStatus.ROUTED.value,
        ):
            logger.info("Candidate %s was claimed by another handler", candidate.id)
            return None

        if not await claim_capacity(self.db, candidate.vendor_id, candidate.rule.capacity_limit):
            await compare_and_set(
                self.db, MatchCandidate, candidate.id, CandidateStatus.ROUTED.value,
                status=CandidateStatus.SKIPPED.value,
            )
            logger.warning("Skipped candidate %s: vendor %s at capacity", candidate.id, candidate.vendor_id)
            return None

        routing = MatchRouting(
            id=routing_id,
            match_candidate_id=candidate.id,
            vendor_id=candidate.vendor_id,
            routing_method=method.value,
            status=RoutingStatus.ROUTED.value,
        )
        self.db.add(routing)
        advance_request(request, RequestStatus.ROUTED)
        await self.db.flush()
        await self.db.refresh(routing)

        logger.info(
            "Routed request %s to vendor %s (candidate %s, score %d, %s)",
            request.id,
            candidate.vendor_id,
            candidate.id,
            candidate.match_score,
            method.value,
        )
        self._notify(routing)
        return routing

    def _notify(self, routing: MatchRouting) -> None:
        # Routing state is the source of truth; delivery is retried by the task queue
        try:
            self.notifier.vendor_routed(routing.id)
        except Exception as e:
            logger.error("Vendor notification for routing %s could not be queued: %s", routing.id, e)

    async def _get_request(self, request_id: uuid.UUID) -> ServiceRequest:
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Request", str(request_id))
        return request

    def _ensure_routable(self, request: ServiceRequest) -> None:
        if is_terminal(request):
            raise ConflictError(f"Request '{request.id}' is already {request.status}")

    async def _next_pending(self, request_id: uuid.UUID) -> MatchCandidate | None:
        result = await self.db.execute(
            select(MatchCandidate)
            .where(
                MatchCandidate.request_id == request_id,
                MatchCandidate.status == CandidateStatus.PENDING.value,
            )
            .order_by(MatchCandidate.match_score.desc(), MatchCandidate.rank)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
