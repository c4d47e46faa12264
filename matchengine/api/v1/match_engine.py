import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.api.deps import get_db, get_notifier
from matchengine.common.enums import Decision, RequestStatus, Urgency
from matchengine.common.exceptions import BadRequestError, MatchEngineException, StoreError
from matchengine.common.logging import get_logger
from matchengine.core.matching.reasons import reason_codes, render_reasons
from matchengine.core.matching.schemas import RankedCandidate
from matchengine.core.matching.service import MatchEngineService
from matchengine.core.notifications.notifier import VendorNotifier
from matchengine.db.models.match import MatchCandidate, MatchRouting, VendorDecision
from matchengine.db.models.request import ServiceRequest

logger = get_logger("api.match_engine")

router = APIRouter(prefix="/match-engine", tags=["Match Engine"])


# ---------- Schemas ----------


class ActionEnvelope(BaseModel):
    action: str
    data: dict[str, Any] = Field(default_factory=dict)


class CreateRequestInput(BaseModel):
    agent_id: uuid.UUID
    service_category: str = Field(min_length=1, max_length=100)
    budget: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=2)
    urgency: Urgency = Urgency.MEDIUM
    location: str | None = Field(default=None, max_length=255)
    specific_requirements: dict[str, Any] | None = None


class RequestIdInput(BaseModel):
    request_id: uuid.UUID


class RouteToVendorInput(BaseModel):
    match_candidate_id: uuid.UUID


class VendorDecisionInput(BaseModel):
    routing_id: uuid.UUID
    vendor_id: uuid.UUID
    decision: Decision
    response_message: str | None = None
    estimated_delivery: str | None = None


class MatchResponse(BaseModel):
    candidate_id: uuid.UUID | None
    vendor_id: uuid.UUID
    vendor_name: str
    rank: int
    match_score: int
    match_reasons: list[str]
    match_reason_codes: list[str]
    estimated_response_time: str


class DecisionResponse(BaseModel):
    id: uuid.UUID
    routing_id: uuid.UUID
    vendor_id: uuid.UUID
    decision: str
    response_message: str | None
    estimated_delivery: str | None
    decided_at: datetime

    model_config = {"from_attributes": True}


class RoutingResponse(BaseModel):
    id: uuid.UUID
    match_candidate_id: uuid.UUID
    vendor_id: uuid.UUID
    routing_method: str
    routed_at: datetime
    vendor_response_at: datetime | None
    status: str
    decisions: list[DecisionResponse]


class CandidateResponse(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    vendor_id: uuid.UUID
    vendor_name: str
    rank: int
    match_score: int
    match_reasons: list[str]
    match_reason_codes: list[str]
    status: str
    routings: list[RoutingResponse]


class RequestResponse(BaseModel):
    id: uuid.UUID
    requester_id: uuid.UUID
    service_category: str
    budget: float | None
    urgency: str
    location: str | None
    extra_requirements: dict | None
    status: str
    open_routing_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------- Rendering ----------


def _match_response(candidate: RankedCandidate) -> dict:
    return MatchResponse(
        candidate_id=candidate.candidate_id,
        vendor_id=candidate.vendor_id,
        vendor_name=candidate.vendor_name,
        rank=candidate.rank,
        match_score=candidate.match_score,
        match_reasons=render_reasons(candidate.match_reasons),
        match_reason_codes=reason_codes(candidate.match_reasons),
        estimated_response_time=candidate.estimated_response_time,
    ).model_dump(mode="json")


def _routing_response(routing: MatchRouting) -> RoutingResponse:
    return RoutingResponse(
        id=routing.id,
        match_candidate_id=routing.match_candidate_id,
        vendor_id=routing.vendor_id,
        routing_method=routing.routing_method,
        routed_at=routing.routed_at,
        vendor_response_at=routing.vendor_response_at,
        status=routing.status,
        decisions=[DecisionResponse.model_validate(d) for d in routing.decisions],
    )


def _candidate_response(candidate: MatchCandidate) -> dict:
    return CandidateResponse(
        id=candidate.id,
        request_id=candidate.request_id,
        vendor_id=candidate.vendor_id,
        vendor_name=candidate.vendor.name,
        rank=candidate.rank,
        match_score=candidate.match_score,
        match_reasons=render_reasons(candidate.match_reasons),
        match_reason_codes=reason_codes(candidate.match_reasons),
        status=candidate.status,
        routings=[_routing_response(r) for r in candidate.routings],
    ).model_dump(mode="json")


# ---------- Action handlers ----------


async def _create_request(service: MatchEngineService, data: dict) -> dict:
    body = CreateRequestInput.model_validate(data)
    request, ranked, routing = await service.create_request(
        requester_id=body.agent_id,
        service_category=body.service_category,
        budget=body.budget,
        urgency=body.urgency,
        location=body.location,
        extra_requirements=body.specific_requirements,
    )

    message = f"Request created successfully. Found {len(ranked)} potential matches."
    if routing is not None:
        message += " Routed to the top match."
    return {
        "success": True,
        "request_id": str(request.id),
        "matches": len(ranked),
        "status": request.status,
        "routing_id": str(routing.id) if routing else None,
        "message": message,
    }


async def _find_matches(service: MatchEngineService, data: dict) -> dict:
    body = RequestIdInput.model_validate(data)
    request, ranked = await service.find_matches(body.request_id)
    return {
        "success": True,
        "matches": [_match_response(c) for c in ranked],
        "request_id": str(request.id),
    }


async def _route_to_vendor(service: MatchEngineService, data: dict) -> dict:
    body = RouteToVendorInput.model_validate(data)
    routing = await service.route_to_vendor(body.match_candidate_id)
    return {
        "success": True,
        "routing_id": str(routing.id),
        "message": "Successfully routed to vendor",
    }


async def _route_next(service: MatchEngineService, data: dict) -> dict:
    body = RequestIdInput.model_validate(data)
    routing = await service.route_next(body.request_id)
    if routing is None:
        return {
            "success": True,
            "routing_id": None,
            "status": RequestStatus.CLOSED.value,
            "message": "No candidates left; request closed",
        }
    return {
        "success": True,
        "routing_id": str(routing.id),
        "status": RequestStatus.ROUTED.value,
        "message": "Routed to next best vendor",
    }


async def _vendor_decision(service: MatchEngineService, data: dict) -> dict:
    body = VendorDecisionInput.model_validate(data)
    decision, next_routing = await service.record_decision(
        routing_id=body.routing_id,
        vendor_id=body.vendor_id,
        decision=body.decision,
        response_message=body.response_message,
        estimated_delivery=body.estimated_delivery,
    )
    return {
        "success": True,
        "decision_id": str(decision.id),
        "next_routing_id": str(next_routing.id) if next_routing else None,
        "message": f"Vendor decision recorded: {body.decision.value}",
    }


async def _get_request_status(service: MatchEngineService, data: dict) -> dict:
    body = RequestIdInput.model_validate(data)
    request: ServiceRequest = await service.get_request_status(body.request_id)
    return {
        "success": True,
        "request": RequestResponse.model_validate(request).model_dump(mode="json"),
        "status": request.status,
        "candidates": [_candidate_response(c) for c in request.candidates],
    }


ActionHandler = Callable[[MatchEngineService, dict], Awaitable[dict]]

ACTION_HANDLERS: dict[str, ActionHandler] = {
    "create_request": _create_request,
    "find_matches": _find_matches,
    "route_to_vendor": _route_to_vendor,
    "route_next": _route_next,
    "vendor_decision": _vendor_decision,
    "get_request_status": _get_request_status,
}


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'data'}: {err['msg']}" for err in error.errors()
    )


# ---------- Endpoints ----------


@router.post("")
async def dispatch_action(
    body: ActionEnvelope,
    db: AsyncSession = Depends(get_db),
    notifier: VendorNotifier = Depends(get_notifier),
):
    handler = ACTION_HANDLERS.get(body.action)
    if handler is None:
        raise BadRequestError("Invalid action")

    service = MatchEngineService(db, notifier)
    try:
        result = await handler(service, body.data)
        # Commit here so store failures get the same error envelope
        await db.commit()
        return result
    except ValidationError as e:
        raise BadRequestError(f"Invalid data for {body.action}: {_describe(e)}")
    except MatchEngineException:
        raise
    except SQLAlchemyError:
        logger.exception("Store failure during %s", body.action)
        raise StoreError()
    except Exception:
        logger.exception("Unexpected failure during %s", body.action)
        raise StoreError()
