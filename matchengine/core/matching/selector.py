import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.common.enums import CandidateStatus
from matchengine.common.logging import get_logger
from matchengine.config import settings
from matchengine.core.matching.schemas import RankedCandidate, VendorMeta
from matchengine.core.matching.scorer import base_priority, is_eligible, ranking_key, score_rule
from matchengine.db.models.match import MatchCandidate
from matchengine.db.models.request import ServiceRequest
from matchengine.db.models.vendor import Vendor, VendorRule

logger = get_logger("matching.selector")

DEFAULT_RESPONSE_TIME = "24 hours"


def _serves_category(rule: VendorRule, category: str) -> bool:
    categories = {c.strip().lower() for c in rule.service_categories or []}
    return category.strip().lower() in categories


async def rank_candidates(request: ServiceRequest, db: AsyncSession) -> list[RankedCandidate]:
    """Score every active rule for the request and return the eligible vendors, best first."""
    result = await db.execute(
        select(VendorRule, Vendor)
        .join(Vendor, VendorRule.vendor_id == Vendor.id)
        .where(VendorRule.is_active.is_(True), Vendor.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    rows = result.all()

    best_per_vendor: dict[uuid.UUID, RankedCandidate] = {}
    for rule, vendor in rows:
        if not _serves_category(rule, request.service_category):
            continue

        # At capacity vendors are never scored
        if vendor.in_flight_count >= rule.capacity_limit:
            logger.debug("Skipping vendor %s: at capacity (%d/%d)", vendor.id, vendor.in_flight_count, rule.capacity_limit)
            continue

        meta = VendorMeta(name=vendor.name, rating=vendor.rating or 0.0, response_time_avg=vendor.response_time_avg)
        scored = score_rule(request, rule, meta)
        if not is_eligible(scored, vendor.in_flight_count, rule.capacity_limit):
            continue

        candidate = RankedCandidate(
            vendor_id=vendor.id,
            vendor_rule_id=rule.id,
            vendor_name=vendor.name,
            priority_score=base_priority(rule),
            match_score=scored.score,
            match_reasons=scored.reasons,
            estimated_response_time=vendor.response_time_avg or DEFAULT_RESPONSE_TIME,
        )

        # One candidate per vendor: keep the vendor's best-ranked rule
        current = best_per_vendor.get(vendor.id)
        if current is None or ranking_key(candidate) < ranking_key(current):
            best_per_vendor[vendor.id] = candidate

    ranked = sorted(best_per_vendor.values(), key=ranking_key)
    for position, candidate in enumerate(ranked, start=1):
        candidate.rank = position
    return ranked


async def select_candidates(
    request: ServiceRequest, db: AsyncSession, persist: bool = True
) -> list[RankedCandidate]:
    """Rank eligible vendors and store the top ``MATCH_TOP_K`` as pending candidates.

    Returns the full ranked list; only the top slice is durable. Vendors that
    already hold a candidate for this request are not inserted twice and the
    per-request total never exceeds ``MATCH_TOP_K``. Request status is left to
    the caller.
    """
    logger.info("Selecting candidates for request %s (%s)", request.id, request.service_category)

    ranked = await rank_candidates(request, db)

    existing_result = await db.execute(
        select(MatchCandidate.vendor_id, MatchCandidate.id).where(MatchCandidate.request_id == request.id)
    )
    existing = dict(existing_result.all())

    if persist:
        free_slots = settings.MATCH_TOP_K - len(existing)
        for candidate in ranked[: settings.MATCH_TOP_K]:
            if candidate.vendor_id in existing:
                continue
            if free_slots <= 0:
                break

            row = MatchCandidate(
                request_id=request.id,
                vendor_id=candidate.vendor_id,
                vendor_rule_id=candidate.vendor_rule_id,
                rank=candidate.rank,
                match_score=candidate.match_score,
                match_reasons=[r.model_dump(mode="json") for r in candidate.match_reasons],
                status=CandidateStatus.PENDING.value,
            )
            db.add(row)
            await db.flush()
            existing[candidate.vendor_id] = row.id
            free_slots -= 1

    for candidate in ranked:
        candidate.candidate_id = existing.get(candidate.vendor_id)

    logger.info(
        "Request %s: %d eligible vendors, %d candidates stored",
        request.id,
        len(ranked),
        len(existing),
    )
    return ranked
