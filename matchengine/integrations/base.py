from abc import ABC, abstractmethod

from matchengine.common.logging import get_logger


class BaseIntegration(ABC):
    """Base class for outbound vendor-messaging integrations."""

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the integration is reachable."""
        ...
