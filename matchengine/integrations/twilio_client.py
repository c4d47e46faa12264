"""Twilio SMS client for urgent vendor offers.

``mock_`` account SIDs switch to log-only mode.
"""

from __future__ import annotations

import uuid
from typing import Any

import httpx

from matchengine.config import settings
from matchengine.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.TWILIO_ACCOUNT_SID.startswith("mock_")


class SMSClient(BaseIntegration):
    def __init__(self) -> None:
        super().__init__("twilio")

    @property
    def _base_url(self) -> str:
        return f"https://api.twilio.com/2010-04-01/Accounts/{settings.TWILIO_ACCOUNT_SID}"

    @property
    def _auth(self) -> tuple[str, str]:
        return (settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)

    async def health_check(self) -> bool:
        if _is_mock():
            return True
        try:
            async with httpx.AsyncClient(timeout=10, auth=self._auth) as client:
                resp = await client.get(f"{self._base_url}.json")
                return resp.status_code == 200
        except httpx.HTTPError as e:
            self.logger.error("Twilio health check failed: %s", e)
            return False

    async def send_sms(self, to: str, body: str) -> dict[str, Any]:
        if _is_mock():
            self.logger.info("Mock SMS | to=%s | len=%d", to, len(body))
            return {"status": "sent", "sid": f"SM{uuid.uuid4().hex}", "to": to}

        try:
            async with httpx.AsyncClient(timeout=30, auth=self._auth) as client:
                resp = await client.post(
                    f"{self._base_url}/Messages.json",
                    data={"From": settings.TWILIO_FROM_NUMBER, "To": to, "Body": body},
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("Twilio SMS to %s failed: %s", to, e)
            return {"status": "failed", "error": str(e), "to": to}

        sid = resp.json().get("sid")
        self.logger.info("SMS sent via Twilio: sid=%s", sid)
        return {"status": "sent", "sid": sid, "to": to}
