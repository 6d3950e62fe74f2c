import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

BOT_TOKEN_URL = "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
BOT_TOKEN_SCOPE = "https://api.botframework.com/.default"
# Hosts the bot token may be sent to, besides the configured service URL
TRUSTED_SERVICE_HOSTS = ("smba.trafficmanager.net",)
TRUSTED_SERVICE_DOMAINS = (".botframework.com",)


class RelayDeliveryError(Exception):
    """The Bot Connector did not accept an outbound message."""


class TeamsClient:
    """Outbound Teams messages through the Bot Framework Connector REST API."""

    def __init__(self, bot_id: str, bot_password: str,
                 service_url: str = "https://smba.trafficmanager.net/teams",
                 timeout: int = 10):
        self.bot_id = bot_id
        self.bot_password = bot_password
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expiry: float = 0.0

        logger.info("🔧 TeamsClient initialized:")
        logger.info(f"   Bot ID: {bot_id or 'NOT_SET'}")
        logger.info(f"   Bot password: {'***' + (bot_password[-4:] if bot_password and len(bot_password) > 4 else 'NOT_SET')}")

    def _get_token(self) -> str:
        if self._token and time.time() < self._token_expiry:
            return self._token
        if not self.bot_id or not self.bot_password:
            raise RelayDeliveryError("Bot credentials are not configured (BOT_ID / BOT_PASSWORD)")

        response = requests.post(
            BOT_TOKEN_URL,
            data={
                "grant_type": "client_credentials",
                "client_id": self.bot_id,
                "client_secret": self.bot_password,
                "scope": BOT_TOKEN_SCOPE,
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise RelayDeliveryError(f"Bot token request failed: {response.status_code} - {response.text[:200]}")

        token_data = response.json()
        self._token = token_data.get("access_token")
        if not self._token:
            raise RelayDeliveryError("Bot token response missing access_token")
        # Refresh a minute before the advertised expiry
        self._token_expiry = time.time() + max(int(token_data.get("expires_in", 3600)) - 60, 0)
        return self._token

    def is_trusted_service_url(self, service_url: Optional[str]) -> bool:
        parsed = urlparse(service_url or "")
        host = (parsed.hostname or "").lower()
        if parsed.scheme != "https" or not host:
            return False
        if host == (urlparse(self.service_url).hostname or "").lower():
            return True
        return host in TRUSTED_SERVICE_HOSTS or host.endswith(TRUSTED_SERVICE_DOMAINS)

    def resolve_service_url(self, service_url: Optional[str]) -> str:
        """Return the connector base URL to post to.

        An activity's serviceUrl is only honoured when its host is trusted;
        anything else falls back to the configured TEAMS_SERVICE_URL so the
        bot token never leaves the Bot Framework.
        """
        if not service_url:
            return self.service_url
        if not self.is_trusted_service_url(service_url):
            logger.warning(f"⚠️ Ignoring untrusted serviceUrl {service_url}; using {self.service_url}")
            return self.service_url
        return service_url.rstrip("/")

    def _post_activity(self, text: str, conversation_id: str, service_url: Optional[str]) -> dict:
        base_url = self.resolve_service_url(service_url)
        url = f"{base_url}/v3/conversations/{conversation_id}/activities"
        payload = {
            "type": "message",
            "text": text,
            "from": {"id": self.bot_id, "name": "AD Commands Bot"},
            "conversation": {"id": conversation_id},
        }
        headers = {
            "Authorization": f"Bearer {self._get_token()}",
            "Content-Type": "application/json",
        }

        logger.info(f"📤 TEAMS SEND ATTEMPT to {conversation_id}: '{text[:100]}{'...' if len(text) > 100 else ''}'")
        response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
        logger.info(f"📨 Bot Connector response: {response.status_code}")

        if response.status_code not in (200, 201, 202):
            raise RelayDeliveryError(f"Bot Connector error: {response.status_code} - {response.text[:200]}")
        try:
            return response.json() or {}
        except ValueError:
            return {}

    async def send_message(self, text: str, conversation_id: str, service_url: Optional[str] = None) -> dict:
        """Send `text` into a Teams conversation; returns the connector's ack body.

        Raises RelayDeliveryError on any non-2xx answer or transport failure.
        """
        if not conversation_id:
            raise RelayDeliveryError("No conversation id given")
        try:
            ack = await asyncio.to_thread(self._post_activity, text, conversation_id, service_url)
        except requests.exceptions.Timeout as e:
            logger.error(f"❌ Teams send timeout: {e}")
            raise RelayDeliveryError(f"Timed out sending to Teams: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Teams send connection error: {e}")
            raise RelayDeliveryError(f"Could not reach Teams: {e}") from e
        logger.info(f"✅ Message delivered to conversation {conversation_id}")
        return ack
