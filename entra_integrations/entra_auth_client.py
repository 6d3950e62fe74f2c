# entra_auth_client.py - interactive sign-in (authorization code flow) against Entra ID

import asyncio
import base64
import json
import logging
from typing import Dict
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

SIGN_IN_SCOPES = "openid profile offline_access https://graph.microsoft.com/User.Read"


class EntraAuthError(Exception):
    """Sign-in handshake failed."""


def encode_state(user_id: str) -> str:
    return base64.urlsafe_b64encode(json.dumps({"userId": user_id}).encode()).decode()


def decode_state(state: str) -> str:
    """Return the chat user id carried in an OAuth `state` value."""
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (ValueError, UnicodeDecodeError) as e:
        raise EntraAuthError("Invalid state parameter") from e
    user_id = data.get("userId") if isinstance(data, dict) else None
    if not user_id:
        raise EntraAuthError("State parameter carries no user id")
    return user_id


class EntraAuthClient:
    def __init__(self, tenant_id: str, client_id: str, client_secret: str,
                 redirect_uri: str, timeout: int = 15):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.authority = f"https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0"

    def get_auth_url(self, user_id: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": SIGN_IN_SCOPES,
            "state": encode_state(user_id),
            # Enforce a fresh interactive (MFA) sign-in
            "prompt": "login",
        }
        return f"{self.authority}/authorize?{urlencode(params)}"

    def _exchange_code(self, code: str) -> str:
        response = requests.post(
            f"{self.authority}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
                "scope": SIGN_IN_SCOPES,
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            try:
                error_type = response.json().get("error", "unknown")
            except ValueError:
                error_type = response.text[:100]
            logger.error(f"❌ Code exchange failed: {response.status_code} ({error_type})")
            raise EntraAuthError("Failed to acquire access token")
        access_token = response.json().get("access_token")
        if not access_token:
            raise EntraAuthError("Token response missing access_token")
        return access_token

    def _get_user_info(self, access_token: str) -> Dict:
        response = requests.get(
            "https://graph.microsoft.com/v1.0/me",
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise EntraAuthError(f"Failed to get user info: {response.status_code}")
        info = response.json()
        return {
            "id": info.get("id"),
            "display_name": info.get("displayName"),
            "user_principal_name": info.get("userPrincipalName"),
            "mail": info.get("mail"),
            "job_title": info.get("jobTitle"),
            "department": info.get("department"),
        }

    def _complete_sign_in(self, code: str) -> Dict:
        return self._get_user_info(self._exchange_code(code))

    async def complete_sign_in(self, code: str) -> Dict:
        """Exchange an authorization code and return the signed-in user's profile."""
        try:
            return await asyncio.to_thread(self._complete_sign_in, code)
        except requests.exceptions.RequestException as e:
            raise EntraAuthError(f"Sign-in request failed: {e}") from e
