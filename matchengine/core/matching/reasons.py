"""Display rendering for structured match reasons."""

from matchengine.common.enums import MatchReasonCode
from matchengine.core.matching.schemas import MatchReason

REASON_TEMPLATES: dict[MatchReasonCode, str] = {
    MatchReasonCode.BUDGET_MIN_MET: "Budget meets minimum requirement",
    MatchReasonCode.BUDGET_WITHIN_MAX: "Budget within vendor range",
    MatchReasonCode.LOCATION_SERVED: "Serves your location ({location})",
    MatchReasonCode.LOCATION_OUTSIDE_AREA: "Outside vendor's service area ({location})",
    MatchReasonCode.URGENT_PRIORITY: "Prioritized for urgent requests",
    MatchReasonCode.HIGHLY_RATED: "Highly rated vendor ({rating:.1f}/5)",
}


def render_reason(reason: MatchReason | dict) -> str:
    if isinstance(reason, dict):
        reason = MatchReason.model_validate(reason)
    template = REASON_TEMPLATES[reason.code]
    try:
        return template.format(**reason.params)
    except (KeyError, ValueError):
        # Older rows may lack params; fall back to the bare label
        return template.split(" (")[0]


def render_reasons(reasons: list[MatchReason | dict] | None) -> list[str]:
    return [render_reason(r) for r in reasons or []]


def reason_codes(reasons: list[MatchReason | dict] | None) -> list[str]:
    codes = []
    for r in reasons or []:
        code = r["code"] if isinstance(r, dict) else r.code
        codes.append(MatchReasonCode(code).value)
    return codes
