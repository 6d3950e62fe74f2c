"""Service construction, done once at startup and shared across routers.

Everything stateful (notably the SessionStore) is built here and handed to
its consumers explicitly instead of living in module globals.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.application.auth_service import AuthService
from app.application.command_processor import CommandProcessor, CommandRouter
from app.config import Settings, get_settings
from app.domain.authorization import Authorizer
from app.domain.dispatch import DispatchStrategy
from app.domain.sessions import SessionStore
from app.infrastructure.dispatch_strategies import DirectExecuteDispatchStrategy, RelayDispatchStrategy
from app.infrastructure.repositories import SqlAlchemyAuditRecorder
from entra_integrations.entra_auth_client import EntraAuthClient
from entra_integrations.graph_directory_client import GraphDirectoryClient
from rapid7_integrations.insight_connect_client import InsightConnectClient
from teams_coordinator.teams_client import TeamsClient

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    session_store: SessionStore
    authorizer: Authorizer
    teams_client: TeamsClient
    directory: GraphDirectoryClient
    dispatch_strategy: DispatchStrategy
    audit_recorder: SqlAlchemyAuditRecorder
    command_processor: CommandProcessor
    auth_service: AuthService
    insight_connect_client: Optional[InsightConnectClient] = None


def build_dispatch_strategy(settings: Settings, teams_client: TeamsClient,
                            insight_connect_client: Optional[InsightConnectClient] = None) -> DispatchStrategy:
    if settings.dispatch_mode == "relay":
        return RelayDispatchStrategy(teams_client, settings.it_team_chat_id, settings.hr_team_chat_id)
    if settings.dispatch_mode == "direct":
        client = insight_connect_client or InsightConnectClient(
            base_url=settings.rapid7_base_url or "",
            api_key=settings.rapid7_api_key or "",
            timeout=settings.rapid7_timeout_seconds,
        )
        return DirectExecuteDispatchStrategy(client, default_domain=settings.domain_1,
                                             prefix=settings.command_prefix)
    raise ValueError(f"Unknown DISPATCH_MODE '{settings.dispatch_mode}' (expected 'relay' or 'direct')")


def build_services(settings: Optional[Settings] = None, session_factory=None) -> ServiceContainer:
    settings = settings or get_settings()
    if session_factory is None:
        from database.connection import SessionLocal
        session_factory = SessionLocal

    session_store = SessionStore(
        recognized_chats=settings.recognized_chats,
        timeout_seconds=settings.session_timeout_seconds,
    )
    authorizer = Authorizer(settings.it_team_chat_id, settings.hr_team_chat_id)
    teams_client = TeamsClient(
        bot_id=settings.bot_id or "",
        bot_password=settings.bot_password or "",
        service_url=settings.teams_service_url,
    )
    directory = GraphDirectoryClient(
        tenant_id=settings.tenant_id or "",
        client_id=settings.client_id or "",
        client_secret=settings.client_secret or "",
        domains=[settings.domain_1, settings.domain_2],
    )

    insight_connect_client = None
    if settings.dispatch_mode == "direct":
        insight_connect_client = InsightConnectClient(
            base_url=settings.rapid7_base_url or "",
            api_key=settings.rapid7_api_key or "",
            timeout=settings.rapid7_timeout_seconds,
        )
    strategy = build_dispatch_strategy(settings, teams_client, insight_connect_client)
    logger.info(f"🤖 Dispatch strategy: {strategy.name}")

    audit_recorder = SqlAlchemyAuditRecorder(session_factory)
    router = CommandRouter(directory, strategy, prefix=settings.command_prefix)
    command_processor = CommandProcessor(session_store, authorizer, router, audit_recorder)
    auth_service = AuthService(
        EntraAuthClient(
            tenant_id=settings.tenant_id or "",
            client_id=settings.client_id or "",
            client_secret=settings.client_secret or "",
            redirect_uri=f"{settings.bot_endpoint}/auth/callback",
        ),
        session_store,
        audit_recorder,
    )

    return ServiceContainer(
        settings=settings,
        session_store=session_store,
        authorizer=authorizer,
        teams_client=teams_client,
        directory=directory,
        dispatch_strategy=strategy,
        audit_recorder=audit_recorder,
        command_processor=command_processor,
        auth_service=auth_service,
        insight_connect_client=insight_connect_client,
    )
