"""Domain layer: command vocabulary, value objects and the command error taxonomy."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from utils.time import iso_utc


class Action(str, Enum):
    """The seven recognized command verbs (without the trigger prefix)."""

    UNLOCK_USER = "unlock-user"
    ENABLE_USER = "enable-user"
    DISABLE_USER = "disable-user"
    RESET_PASSWORD = "reset-password"
    REVOKE_SESSIONS = "revoke-sessions"
    ENABLE_AGENT = "enable-agent"
    DISABLE_AGENT = "disable-agent"

    @classmethod
    def from_token(cls, token: str) -> Optional["Action"]:
        try:
            return cls(token.strip().lower())
        except ValueError:
            return None


USER_ACTIONS = frozenset({
    Action.UNLOCK_USER,
    Action.ENABLE_USER,
    Action.DISABLE_USER,
    Action.RESET_PASSWORD,
})
EMAIL_ACTIONS = frozenset({Action.REVOKE_SESSIONS})
ENDPOINT_ACTIONS = frozenset({Action.ENABLE_AGENT, Action.DISABLE_AGENT})


@dataclass(frozen=True)
class Command:
    """A parsed command line: `!<action> <target>`."""

    action: Action
    target: str
    raw_text: str = ""

    def canonical(self, prefix: str = "!") -> str:
        return f"{prefix}{self.action.value} {self.target}"


@dataclass(frozen=True)
class TargetRecord:
    """Identity resolved from the directory. Never persisted."""

    canonical_id: str
    display_name: str
    department: Optional[str] = None
    account_enabled: Optional[bool] = None
    user_principal_name: Optional[str] = None
    mail: Optional[str] = None
    job_title: Optional[str] = None


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message: str
    reference: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str, error: Optional[str] = None) -> "DispatchResult":
        return cls(success=False, message=message, error=error)


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class AuditRecord:
    actor_id: str
    actor_name: str
    chat_id: str
    command_text: str
    status: AuditStatus
    details: str = ""
    timestamp: str = field(default_factory=iso_utc)


class CommandError(Exception):
    """Base for every failure scoped to a single command invocation."""

    code = "command_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_result(self) -> DispatchResult:
        return DispatchResult.failed(self.message, error=self.code)


class ParseError(CommandError):
    code = "parse_error"


class UnknownCommandError(CommandError):
    code = "unknown_command"


class AuthenticationRequired(CommandError):
    code = "authentication_required"


class AuthorizationDenied(CommandError):
    code = "authorization_denied"


class TargetNotFound(CommandError):
    code = "target_not_found"


class DownstreamFailure(CommandError):
    code = "downstream_failure"


class CommandHandler(ABC):
    """Handler interface for one family of actions."""

    @abstractmethod
    async def handle(self, command: Command, actor_id: str, actor_name: str, chat_id: str) -> DispatchResult:
        """Handle the command."""
        pass
