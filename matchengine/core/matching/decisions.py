import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.common.enums import CandidateStatus, Decision, RequestStatus, RoutingStatus
from matchengine.common.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from matchengine.common.logging import get_logger
from matchengine.core.matching.router import MatchRouter
from matchengine.core.matching.transitions import (
    advance_request,
    compare_and_set,
    is_terminal,
    release_capacity,
    release_request,
)
from matchengine.db.base import utcnow
from matchengine.db.models.match import MatchCandidate, MatchRouting, VendorDecision
from matchengine.db.models.request import ServiceRequest

logger = get_logger("matching.decisions")

DECISION_OUTCOMES = {
    Decision.ACCEPT: (RoutingStatus.ACCEPTED, CandidateStatus.ACCEPTED),
    Decision.DECLINE: (RoutingStatus.DECLINED, CandidateStatus.DECLINED),
}


class DecisionRecorder:
    def __init__(self, db: AsyncSession, router: MatchRouter):
        self.db = db
        self.router = router

    async def record_decision(
        self,
        routing_id: uuid.UUID,
        vendor_id: uuid.UUID,
        decision: Decision,
        response_message: str | None = None,
        estimated_delivery: str | None = None,
    ) -> tuple[VendorDecision, MatchRouting | None]:
        """Record a vendor's answer to a routing.

        Only the handler whose conditional update moves the routing out of
        ``routed`` proceeds; a second answer for the same routing is a
        conflict. A decline releases the vendor's slot and advances the
        request by one hop. Returns the decision row and the follow-up
        routing, if one was made.
        """
        result = await self.db.execute(select(MatchRouting).where(MatchRouting.id == routing_id))
        routing = result.scalar_one_or_none()
        if not routing:
            raise NotFoundError("Routing", str(routing_id))
        if routing.vendor_id != vendor_id:
            raise PermissionDeniedError("Vendor is not the recipient of this routing")

        routing_status, candidate_status = DECISION_OUTCOMES[decision]
        responded_at = utcnow()

        won = await compare_and_set(
            self.db, MatchRouting, routing.id, RoutingStatus.ROUTED.value,
            status=routing_status.value, vendor_response_at=responded_at,
        )
        if not won:
            raise ConflictError(f"Routing '{routing_id}' has already been decided")

        vendor_decision = VendorDecision(
            routing_id=routing.id,
            vendor_id=vendor_id,
            decision=decision.value,
            response_message=response_message,
            estimated_delivery=estimated_delivery,
            decided_at=responded_at,
        )
        self.db.add(vendor_decision)

        await compare_and_set(
            self.db, MatchCandidate, routing.match_candidate_id, CandidateStatus.ROUTED.value,
            status=candidate_status.value,
        )
        candidate = await self.db.get(MatchCandidate, routing.match_candidate_id)
        request = await self.db.get(ServiceRequest, candidate.request_id, populate_existing=True)

        logger.info(
            "Vendor %s answered %s on routing %s (request %s)", vendor_id, decision.value, routing.id, request.id
        )

        await release_request(self.db, request, routing.id)

        next_routing = None
        if decision == Decision.ACCEPT:
            advance_request(request, RequestStatus.FULFILLED)
            await self.db.flush()
        else:
            await release_capacity(self.db, routing.vendor_id)
            await self.db.flush()
            next_routing = await self._fall_back(request)

        await self.db.refresh(vendor_decision)
        return vendor_decision, next_routing

    async def _fall_back(self, request: ServiceRequest) -> MatchRouting | None:
        # The decline is already recorded; a request that cannot advance keeps it
        if is_terminal(request):
            logger.warning("Request %s is %s; no fallback after decline", request.id, request.status)
            return None
        try:
            next_routing = await self.router.route_next(request.id)
        except ConflictError as e:
            # Another handler holds the request or closed it in the meantime
            logger.warning("No fallback after decline for request %s: %s", request.id, e.detail)
            return None

        if next_routing is None:
            logger.info("Fallback chain exhausted for request %s", request.id)
        return next_routing
