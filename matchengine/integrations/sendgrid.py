"""SendGrid email client for vendor offers.

Talks to the SendGrid v3 API when a real key is configured; keys starting
with ``mock_`` switch to log-only mode.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from matchengine.config import settings
from matchengine.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.SENDGRID_API_KEY.startswith("mock_")


class EmailClient(BaseIntegration):
    SENDGRID_URL = "https://api.sendgrid.com/v3"

    def __init__(self) -> None:
        super().__init__("sendgrid")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.SENDGRID_API_KEY}",
            "Content-Type": "application/json",
        }

    async def health_check(self) -> bool:
        if _is_mock():
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.SENDGRID_URL}/scopes", headers=self._headers())
                return resp.status_code == 200
        except httpx.HTTPError as e:
            self.logger.error("SendGrid health check failed: %s", e)
            return False

    async def send_email(self, to: str, subject: str, html_body: str) -> dict[str, Any]:
        sender = settings.FROM_EMAIL
        message_id = str(uuid.uuid4())
        sent_at = datetime.now(timezone.utc).isoformat()

        if _is_mock():
            self.logger.info("Mock email | to=%s | subject='%s'", to, subject)
            return {"status": "sent", "message_id": message_id, "to": to, "timestamp": sent_at}

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": sender},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.post(f"{self.SENDGRID_URL}/mail/send", headers=self._headers(), json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("SendGrid email to %s failed: %s", to, e)
            return {"status": "failed", "error": str(e), "to": to}

        sg_id = resp.headers.get("X-Message-Id", message_id)
        self.logger.info("Email sent via SendGrid: %s", sg_id)
        return {"status": "sent", "message_id": sg_id, "to": to, "timestamp": sent_at}
