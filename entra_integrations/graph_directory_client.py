# graph_directory_client.py - Entra ID directory lookups via Microsoft Graph

import asyncio
import logging
import time
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from app.domain.commands import TargetRecord
from app.infrastructure.repositories import DirectoryResolver

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
USER_FIELDS = "id,displayName,userPrincipalName,mail,onPremisesSamAccountName,accountEnabled,department,jobTitle"
# Graph tokens live an hour; reuse one for 50 minutes
TOKEN_REUSE_SECONDS = 50 * 60


class DirectoryLookupError(Exception):
    """The directory could not be queried (auth or transport failure)."""


def _quote_odata(value: str) -> str:
    return value.replace("'", "''")


class GraphDirectoryClient(DirectoryResolver):
    def __init__(self, tenant_id: str, client_id: str, client_secret: str,
                 domains: Optional[List[str]] = None, timeout: int = 15):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.domains = [d for d in (domains or []) if d]
        self.timeout = timeout
        self.oauth_url = f"https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

        self.enabled = bool(tenant_id and client_id and client_secret)
        if self.enabled:
            logger.info(f"✅ Graph directory lookups enabled (domains: {', '.join(self.domains) or 'none'})")
        else:
            logger.warning("⚠️ Graph directory not configured - set TENANT_ID, CLIENT_ID, CLIENT_SECRET")

    def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expiry:
            return self._access_token
        if not self.enabled:
            raise DirectoryLookupError("Directory credentials are not configured")

        response = requests.post(
            self.oauth_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.error(f"❌ Graph token request failed: {response.status_code}")
            raise DirectoryLookupError("Failed to authenticate with Microsoft Graph")

        self._access_token = response.json().get("access_token")
        if not self._access_token:
            raise DirectoryLookupError("Graph token response missing access_token")
        self._token_expiry = time.time() + TOKEN_REUSE_SECONDS
        return self._access_token

    def _query_users(self, odata_filter: str) -> List[Dict]:
        url = f"{GRAPH_BASE_URL}/users?$filter={quote(odata_filter)}&$select={USER_FIELDS}"
        headers = {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Content-Type": "application/json",
            # Required by Graph for filters over onPremisesSamAccountName
            "ConsistencyLevel": "eventual",
        }
        try:
            response = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DirectoryLookupError(f"Graph request failed: {e}") from e
        if response.status_code != 200:
            raise DirectoryLookupError(f"Graph API error: {response.status_code} - {response.reason}")
        return response.json().get("value", [])

    @staticmethod
    def _to_record(user: Dict) -> TargetRecord:
        return TargetRecord(
            canonical_id=user.get("id", ""),
            display_name=user.get("displayName") or "",
            department=user.get("department"),
            account_enabled=user.get("accountEnabled"),
            user_principal_name=user.get("userPrincipalName"),
            mail=user.get("mail"),
            job_title=user.get("jobTitle"),
        )

    def _lookup(self, odata_filter: str, label: str) -> Optional[TargetRecord]:
        users = self._query_users(odata_filter)
        if not users:
            logger.info(f"User not found: {label}")
            return None
        record = self._to_record(users[0])
        logger.info(f"Found user: {record.display_name} ({record.user_principal_name})")
        return record

    def username_filter(self, username: str) -> str:
        name = _quote_odata(username)
        clauses = [f"userPrincipalName eq '{name}@{_quote_odata(domain)}'" for domain in self.domains]
        clauses.append(f"onPremisesSamAccountName eq '{name}'")
        return " or ".join(clauses)

    async def get_user_by_username(self, username: str) -> Optional[TargetRecord]:
        return await asyncio.to_thread(self._lookup, self.username_filter(username), username)

    async def get_user_by_email(self, email: str) -> Optional[TargetRecord]:
        value = _quote_odata(email)
        odata_filter = f"mail eq '{value}' or userPrincipalName eq '{value}'"
        return await asyncio.to_thread(self._lookup, odata_filter, email)
