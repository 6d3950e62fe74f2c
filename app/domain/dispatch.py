"""Domain layer: downstream execution using the Strategy pattern."""
from abc import ABC, abstractmethod

from app.domain.commands import DispatchResult

DEFAULT_DEPARTMENT = "IT"


class DispatchConfigurationError(Exception):
    """Raised when a strategy cannot run because of missing configuration."""


class DispatchStrategy(ABC):
    """Strategy interface for executing a canonical command downstream."""

    name = "abstract"

    @abstractmethod
    async def execute(self, canonical_command: str, department: str) -> DispatchResult:
        """Execute `canonical_command` for a target belonging to `department`."""
        pass
