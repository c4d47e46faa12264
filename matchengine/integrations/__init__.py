"""Outbound messaging clients used to notify vendors."""

from matchengine.integrations.base import BaseIntegration
from matchengine.integrations.sendgrid import EmailClient
from matchengine.integrations.twilio_client import SMSClient

__all__ = [
    "BaseIntegration",
    "EmailClient",
    "SMSClient",
]
