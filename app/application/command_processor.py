"""Application layer: command routing and the authorization + dispatch pipeline."""
import logging
from typing import Dict, Optional

from app.application.handlers import DirectoryCommandHandler, EndpointCommandHandler
from app.domain.authorization import Authorizer
from app.domain.command_parser import parse
from app.domain.commands import (
    Action, AuditRecord, AuditStatus, AuthenticationRequired, AuthorizationDenied,
    Command, CommandError, CommandHandler, DispatchResult, DownstreamFailure,
    EMAIL_ACTIONS, ENDPOINT_ACTIONS, USER_ACTIONS,
)
from app.domain.dispatch import DispatchStrategy
from app.domain.sessions import SessionStore
from app.infrastructure.repositories import AuditRecorder, DirectoryResolver

logger = logging.getLogger(__name__)

AUTHENTICATION_REQUIRED_MESSAGE = "Authentication required. Please authenticate with MFA to continue."
CHAT_DENIED_MESSAGE = "You are not authorized to use commands in this chat."


class CommandRouter:
    """Maps each action to its handler and turns every outcome into a DispatchResult."""

    def __init__(self, resolver: DirectoryResolver, strategy: DispatchStrategy, prefix: str = "!"):
        self.resolver = resolver
        self.strategy = strategy
        self.prefix = prefix
        by_username = DirectoryCommandHandler(resolver, strategy, by_email=False, prefix=prefix)
        by_email = DirectoryCommandHandler(resolver, strategy, by_email=True, prefix=prefix)
        endpoint = EndpointCommandHandler(strategy, prefix=prefix)

        self._handlers: Dict[Action, CommandHandler] = {}
        for action in USER_ACTIONS:
            self._handlers[action] = by_username
        for action in EMAIL_ACTIONS:
            self._handlers[action] = by_email
        for action in ENDPOINT_ACTIONS:
            self._handlers[action] = endpoint

    def parse(self, raw_text: str) -> Command:
        return parse(raw_text, self.prefix)

    async def route(self, command: Command, actor_id: str, actor_name: str, chat_id: str) -> DispatchResult:
        handler = self._handlers.get(command.action) if isinstance(command.action, Action) else None
        if handler is None:
            return DispatchResult.failed(
                f"Unknown command: {command.action}. Type any message to see available commands.",
                error="unknown_command",
            )

        action = command.action.value
        logger.info(f"Processing command: {action} for target: {command.target} by user: {actor_name}")
        try:
            result = await handler.handle(command, actor_id, actor_name, chat_id)
        except CommandError as e:
            return e.to_result()
        except Exception as e:
            logger.error(f"Error processing {action} for {command.target}: {e}", exc_info=True)
            return DispatchResult.failed(f"{action} failed: {e}", error=DownstreamFailure.code)

        if not result.success:
            return DispatchResult.failed(f"{action} failed: {result.message}",
                                         error=result.error or DownstreamFailure.code)
        return result


class CommandProcessor:
    """Runs one inbound command through both gates, the router and the audit trail."""

    def __init__(self, session_store: SessionStore, authorizer: Authorizer,
                 router: CommandRouter, audit_recorder: Optional[AuditRecorder] = None):
        self.session_store = session_store
        self.authorizer = authorizer
        self.router = router
        self.audit_recorder = audit_recorder

    def _check_access(self, text: str, actor_id: str, chat_id: str) -> Command:
        auth = self.session_store.authenticate(actor_id, chat_id)
        if not auth.authenticated:
            raise AuthenticationRequired(AUTHENTICATION_REQUIRED_MESSAGE)
        if not auth.authorized:
            raise AuthorizationDenied(CHAT_DENIED_MESSAGE)

        command = self.router.parse(text)

        role = self.authorizer.role_of(auth.session)
        if not self.authorizer.can_execute(role, command.action, chat_id):
            raise AuthorizationDenied(
                f"Your role ({role.value}) is not permitted to run "
                f"{self.router.prefix}{command.action.value} in this chat."
            )
        return command

    async def process_command(self, text: str, actor_id: str, actor_name: str, chat_id: str) -> DispatchResult:
        try:
            command = self._check_access(text, actor_id, chat_id)
        except CommandError as e:
            logger.warning(f"Command rejected for {actor_name} ({actor_id}) in {chat_id}: {e.code} - {e.message}")
            return e.to_result()

        result = await self.router.route(command, actor_id, actor_name, chat_id)
        await self._audit(command, result, actor_id, actor_name, chat_id)
        return result

    async def _audit(self, command: Command, result: DispatchResult,
                     actor_id: str, actor_name: str, chat_id: str) -> None:
        if self.audit_recorder is None:
            return
        entry = AuditRecord(
            actor_id=actor_id,
            actor_name=actor_name,
            chat_id=chat_id,
            command_text=command.raw_text or command.canonical(self.router.prefix),
            status=AuditStatus.SUCCESS if result.success else AuditStatus.FAILED,
            details=result.message,
        )
        try:
            await self.audit_recorder.record(entry)
        except Exception as e:
            logger.error(f"❌ Failed to write audit record for '{entry.command_text}': {e}", exc_info=True)
