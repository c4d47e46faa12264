"""Builds and sends the messages a vendor receives when a request is routed to them."""

from __future__ import annotations

import html
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchengine.common.enums import Urgency
from matchengine.common.exceptions import ExternalServiceError, NotFoundError
from matchengine.common.logging import get_logger
from matchengine.config import settings
from matchengine.core.matching.reasons import render_reasons
from matchengine.db.models.match import MatchCandidate, MatchRouting
from matchengine.db.models.request import ServiceRequest
from matchengine.db.models.vendor import Vendor
from matchengine.integrations.sendgrid import EmailClient
from matchengine.integrations.twilio_client import SMSClient

logger = get_logger("notifications.service")

SMS_LIMIT = 160


def _budget_label(request: ServiceRequest) -> str:
    return f"${request.budget:,.0f}" if request.budget is not None else "Open"


async def send_routing_notification(routing_id: str, db: AsyncSession) -> dict[str, Any]:
    result = await db.execute(
        select(MatchRouting, MatchCandidate, ServiceRequest, Vendor)
        .join(MatchCandidate, MatchRouting.match_candidate_id == MatchCandidate.id)
        .join(ServiceRequest, MatchCandidate.request_id == ServiceRequest.id)
        .join(Vendor, MatchRouting.vendor_id == Vendor.id)
        .where(MatchRouting.id == uuid.UUID(routing_id))
    )
    row = result.first()
    if not row:
        raise NotFoundError("Routing", routing_id)
    routing, candidate, request, vendor = row

    # Category, location and reasons carry customer input
    reasons = "".join(f"<li>{html.escape(r)}</li>" for r in render_reasons(candidate.match_reasons))
    category = html.escape(request.service_category)
    location = html.escape(request.location or "Any")
    html_body = f"""
    <h2>New service request</h2>
    <p>Hello {html.escape(vendor.name)},</p>
    <p>A customer request matches your service rules:</p>
    <table>
        <tr><td><strong>Category:</strong></td><td>{category}</td></tr>
        <tr><td><strong>Budget:</strong></td><td>{_budget_label(request)}</td></tr>
        <tr><td><strong>Urgency:</strong></td><td>{request.urgency}</td></tr>
        <tr><td><strong>Location:</strong></td><td>{location}</td></tr>
        <tr><td><strong>Match score:</strong></td><td>{candidate.match_score}/100</td></tr>
    </table>
    <ul>{reasons}</ul>
    <p>Please accept or decline: {settings.APP_URL}/routings/{routing.id}</p>
    """

    email_result = await EmailClient().send_email(
        to=vendor.email,
        subject=f"New {request.service_category} request ({request.urgency} urgency)",
        html_body=html_body,
    )
    if email_result.get("status") != "sent":
        raise ExternalServiceError("sendgrid", email_result.get("error"))

    sms_sent = False
    if request.urgency == Urgency.HIGH.value and vendor.phone:
        body = f"Urgent {request.service_category} request routed to you. Budget {_budget_label(request)}."
        if len(body) > SMS_LIMIT:
            body = body[: SMS_LIMIT - 3] + "..."
        sms_result = await SMSClient().send_sms(to=vendor.phone, body=body)
        sms_sent = sms_result.get("status") == "sent"

    logger.info("Notified vendor %s of routing %s (sms=%s)", vendor.id, routing.id, sms_sent)
    return {
        "routing_id": routing_id,
        "vendor_id": str(vendor.id),
        "email_sent": True,
        "sms_sent": sms_sent,
    }
