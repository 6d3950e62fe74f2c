"""Application layer: completes the Entra sign-in handshake and opens sessions."""
import logging
from typing import Optional

from app.domain.sessions import Session, SessionStore
from app.infrastructure.repositories import AuditRecorder
from entra_integrations.entra_auth_client import EntraAuthClient, decode_state

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, auth_client: EntraAuthClient, session_store: SessionStore,
                 audit_recorder: Optional[AuditRecorder] = None):
        self.auth_client = auth_client
        self.session_store = session_store
        self.audit_recorder = audit_recorder

    def get_auth_url(self, user_id: str) -> str:
        return self.auth_client.get_auth_url(user_id)

    async def handle_auth_callback(self, code: str, state: str) -> Session:
        """Exchange `code`, then create the session for the chat user carried in `state`.

        Raises EntraAuthError when the state or the code is rejected.
        """
        user_id = decode_state(state)
        identity = await self.auth_client.complete_sign_in(code)
        session = self.session_store.create_session(user_id, identity, mfa_verified=True)
        logger.info(f"User {user_id} authenticated successfully as {session.user_principal_name}")

        if self.audit_recorder is not None:
            try:
                await self.audit_recorder.record_session(
                    user_id=user_id,
                    user_name=session.display_name,
                    user_principal_name=session.user_principal_name,
                    department=session.department,
                    mfa_verified=session.mfa_verified,
                )
            except Exception as e:
                logger.error(f"Failed to log user session for {user_id}: {e}")
        return session

    def sign_out(self, user_id: str) -> None:
        self.session_store.invalidate(user_id)
