"""
Pytest configuration and shared fixtures for AD Commands Bot tests.
"""
import os
import tempfile

# Settings are read once at import time by database.connection; pin them first.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'ad_commands_test.sqlite')}")
os.environ.setdefault("IT_TEAM_CHAT_ID", "it-chat")
os.environ.setdefault("HR_TEAM_CHAT_ID", "hr-chat")
os.environ.setdefault("BOT_ENDPOINT", "https://bot.example.com")

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.auth_service import AuthService
from app.application.command_processor import CommandProcessor, CommandRouter
from app.config import get_settings
from app.domain.authorization import Authorizer
from app.domain.commands import DispatchResult, TargetRecord
from app.domain.dispatch import DispatchStrategy
from app.domain.sessions import SessionStore
from app.infrastructure.repositories import AuditRecorder, DirectoryResolver, SqlAlchemyAuditRecorder
from app.services import ServiceContainer
from database.models import Base
from entra_integrations.entra_auth_client import encode_state

IT_CHAT = "it-chat"
HR_CHAT = "hr-chat"
OTHER_CHAT = "random-chat"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeDirectory(DirectoryResolver):
    def __init__(self, users=None, emails=None, error=None):
        self.users = users or {}
        self.emails = emails or {}
        self.error = error
        self.calls = []

    async def get_user_by_username(self, username):
        self.calls.append(("username", username))
        if self.error:
            raise self.error
        return self.users.get(username)

    async def get_user_by_email(self, email):
        self.calls.append(("email", email))
        if self.error:
            raise self.error
        return self.emails.get(email)


class FakeStrategy(DispatchStrategy):
    name = "fake"

    def __init__(self, result=None, error=None):
        self.result = result or DispatchResult(success=True, message="Command accepted", reference="ref-1")
        self.error = error
        self.calls = []

    async def execute(self, canonical_command, department):
        self.calls.append((canonical_command, department))
        if self.error:
            raise self.error
        return self.result


class RecordingAuditRecorder(AuditRecorder):
    def __init__(self, fail=False):
        self.records = []
        self.sessions = []
        self.fail = fail

    async def record(self, entry):
        if self.fail:
            raise RuntimeError("audit database unavailable")
        self.records.append(entry)

    async def record_session(self, user_id, user_name, user_principal_name, department, mfa_verified):
        self.sessions.append({"user_id": user_id, "user_name": user_name, "department": department})


class FakeTeamsClient:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    async def send_message(self, text, conversation_id, service_url=None):
        if self.error:
            raise self.error
        self.sent.append({"text": text, "conversation_id": conversation_id, "service_url": service_url})
        return {"id": f"activity-{len(self.sent)}"}


class FakeAuthClient:
    def __init__(self, identity=None):
        self.identity = identity or {
            "id": "aad-1",
            "display_name": "Ivy Admin",
            "user_principal_name": "ivy@contoso.com",
            "department": "IT",
        }
        self.codes = []

    def get_auth_url(self, user_id):
        return f"https://login.example.com/authorize?state={encode_state(user_id)}"

    async def complete_sign_in(self, code):
        self.codes.append(code)
        return self.identity


JANE = TargetRecord(canonical_id="u-1", display_name="Jane Doe", department="IT",
                    account_enabled=True, user_principal_name="jdoe@contoso.com", mail="jdoe@contoso.com")
HANK = TargetRecord(canonical_id="u-2", display_name="Hank Reyes", department="HR",
                    account_enabled=True, user_principal_name="hreyes@contoso.com", mail="hank@contoso.com")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_store(clock):
    return SessionStore(recognized_chats={IT_CHAT, HR_CHAT}, timeout_seconds=3600, clock=clock)


@pytest.fixture
def authorizer():
    return Authorizer(it_chat_id=IT_CHAT, hr_chat_id=HR_CHAT)


@pytest.fixture
def directory():
    return FakeDirectory(users={"jdoe": JANE, "hreyes": HANK}, emails={"hank@contoso.com": HANK})


@pytest.fixture
def strategy():
    return FakeStrategy()


@pytest.fixture
def audit_recorder():
    return RecordingAuditRecorder()


@pytest.fixture
def router(directory, strategy):
    return CommandRouter(directory, strategy)


@pytest.fixture
def processor(session_store, authorizer, router, audit_recorder):
    return CommandProcessor(session_store, authorizer, router, audit_recorder)


@pytest.fixture
def it_admin(session_store):
    return session_store.create_session("it-user", {"display_name": "Ivy Admin", "department": "Information Technology"})


@pytest.fixture
def hr_user(session_store):
    return session_store.create_session("hr-user", {"display_name": "Hana HR", "department": "Human Resources"})


@pytest.fixture
def db_session_factory():
    """In-memory SQLite shared across threads (the recorder writes via to_thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def sql_audit_recorder(db_session_factory):
    return SqlAlchemyAuditRecorder(db_session_factory)


@pytest.fixture
def teams_client():
    return FakeTeamsClient()


@pytest.fixture
def service_container(session_store, authorizer, directory, strategy, sql_audit_recorder, teams_client):
    settings = get_settings()
    router = CommandRouter(directory, strategy, prefix=settings.command_prefix)
    processor = CommandProcessor(session_store, authorizer, router, sql_audit_recorder)
    auth_service = AuthService(FakeAuthClient(), session_store, sql_audit_recorder)
    return ServiceContainer(
        settings=settings,
        session_store=session_store,
        authorizer=authorizer,
        teams_client=teams_client,
        directory=directory,
        dispatch_strategy=strategy,
        audit_recorder=sql_audit_recorder,
        command_processor=processor,
        auth_service=auth_service,
    )


@pytest.fixture
def test_client(service_container):
    """TestClient with the service container swapped for fakes."""
    from fastapi.testclient import TestClient
    from app.dependencies import get_services
    from main import app

    app.dependency_overrides[get_services] = lambda: service_container
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def create_activity(text="!unlock-user jdoe", user_id="it-user", name="Ivy Admin", chat_id=IT_CHAT,
                    activity_type="message"):
    """Helper to create a Bot Framework message activity."""
    return {
        "type": activity_type,
        "text": text,
        "from": {"id": f"29:{user_id}", "aadObjectId": user_id, "name": name},
        "recipient": {"id": "28:bot", "name": "AD Commands Bot"},
        "conversation": {"id": chat_id},
        "serviceUrl": "https://smba.trafficmanager.net/amer/",
    }
