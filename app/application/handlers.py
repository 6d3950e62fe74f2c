"""Application layer: command handlers for directory-backed and endpoint commands."""
import logging
from typing import Optional

from app.domain.commands import (
    Action, Command, CommandHandler, DispatchResult, TargetNotFound, TargetRecord,
)
from app.domain.dispatch import DEFAULT_DEPARTMENT, DispatchStrategy
from app.infrastructure.repositories import DirectoryResolver

logger = logging.getLogger(__name__)

OUTCOMES = {
    Action.UNLOCK_USER: "User '{target}' ({name}) will be unlocked.",
    Action.ENABLE_USER: "User '{target}' ({name}) will be enabled.",
    Action.DISABLE_USER: "User '{target}' ({name}) will be disabled.",
    Action.RESET_PASSWORD: "Password for user '{target}' ({name}) will be reset for next login.",
    Action.REVOKE_SESSIONS: "All sessions for user '{upn}' ({name}) will be revoked.",
    Action.ENABLE_AGENT: "Sentinel One agent for '{target}' will be enabled for 3 hours.",
    Action.DISABLE_AGENT: "Sentinel One agent for '{target}' will be disabled for 3 hours.",
}


def _describe(action: Action, target: str, record: Optional[TargetRecord] = None) -> str:
    name = record.display_name if record else ""
    upn = (record.user_principal_name if record else None) or target
    return OUTCOMES[action].format(target=target, name=name, upn=upn)


class DirectoryCommandHandler(CommandHandler):
    """Resolve the target in the directory, then dispatch to its department."""

    def __init__(self, resolver: DirectoryResolver, strategy: DispatchStrategy,
                 by_email: bool = False, prefix: str = "!"):
        self.resolver = resolver
        self.strategy = strategy
        self.by_email = by_email
        self.prefix = prefix

    async def _resolve(self, target: str) -> Optional[TargetRecord]:
        if self.by_email:
            return await self.resolver.get_user_by_email(target)
        return await self.resolver.get_user_by_username(target)

    async def handle(self, command: Command, actor_id: str, actor_name: str, chat_id: str) -> DispatchResult:
        record = await self._resolve(command.target)
        if record is None:
            if self.by_email:
                raise TargetNotFound(f"User with email '{command.target}' not found in Active Directory.")
            raise TargetNotFound(f"User '{command.target}' not found in Active Directory.")

        logger.info(f"Resolved {command.target} -> {record.display_name} ({record.department or 'no department'})")
        result = await self.strategy.execute(command.canonical(self.prefix), record.department or DEFAULT_DEPARTMENT)
        if not result.success:
            return result
        return DispatchResult(
            success=True,
            message=f"{result.message}. {_describe(command.action, command.target, record)}",
            reference=result.reference,
        )


class EndpointCommandHandler(CommandHandler):
    """Endpoint (IP / hostname) commands: no directory entry, always the IT channel."""

    def __init__(self, strategy: DispatchStrategy, prefix: str = "!"):
        self.strategy = strategy
        self.prefix = prefix

    async def handle(self, command: Command, actor_id: str, actor_name: str, chat_id: str) -> DispatchResult:
        result = await self.strategy.execute(command.canonical(self.prefix), DEFAULT_DEPARTMENT)
        if not result.success:
            return result
        return DispatchResult(
            success=True,
            message=f"{result.message}. {_describe(command.action, command.target)}",
            reference=result.reference,
        )
