"""Infrastructure layer: the two concrete dispatch strategies."""
import logging
from typing import Dict, Optional

import requests

from app.domain.commands import Action, DispatchResult, DownstreamFailure
from app.domain.dispatch import DEFAULT_DEPARTMENT, DispatchConfigurationError, DispatchStrategy
from rapid7_integrations.insight_connect_client import InsightConnectClient
from teams_coordinator.teams_client import RelayDeliveryError, TeamsClient
from utils.time import iso_utc

logger = logging.getLogger(__name__)

HR_DEPARTMENTS = {"hr", "human resources"}
FALLBACK_DOMAIN = "default.domain.com"
AGENT_DURATION = "3h"
AGENT_TYPE = "sentinel_one"


class RelayDispatchStrategy(DispatchStrategy):
    """Post the command into a department channel watched by Insight Connect."""

    name = "relay"

    def __init__(self, sender: TeamsClient, it_channel_id: Optional[str], hr_channel_id: Optional[str]):
        self.sender = sender
        self.it_channel_id = it_channel_id
        self.hr_channel_id = hr_channel_id

    def channel_for(self, department: str) -> str:
        is_hr = (department or "").strip().lower() in HR_DEPARTMENTS
        channel_id = self.hr_channel_id if is_hr else self.it_channel_id
        if not channel_id:
            raise DispatchConfigurationError(f"No channel ID configured for {department} department")
        return channel_id

    async def execute(self, canonical_command: str, department: str) -> DispatchResult:
        department = department or DEFAULT_DEPARTMENT
        channel_id = self.channel_for(department)
        logger.info(f"📡 Relaying '{canonical_command}' to {department} channel ({channel_id})")
        try:
            ack = await self.sender.send_message(canonical_command, channel_id)
        except RelayDeliveryError as e:
            logger.error(f"❌ Relay of '{canonical_command}' failed: {e}")
            return DispatchResult.failed(f"Failed to send command to Teams channel: {e}",
                                         error=DownstreamFailure.code)
        return DispatchResult(
            success=True,
            message=f"Command '{canonical_command}' sent to Insight Connect channel",
            reference=(ack or {}).get("id") or channel_id,
        )


def determine_domain(target: str, default_domain: Optional[str]) -> Dict:
    """Pick the directory domain for a target.

    Mail addresses carry their own domain. Bare usernames get the primary
    domain, flagged as inferred because nothing confirms the user lives there.
    """
    if "@" in target:
        return {"domain": target.split("@", 1)[1], "domainInferred": False}
    return {"domain": default_domain or FALLBACK_DOMAIN, "domainInferred": True}


class DirectExecuteDispatchStrategy(DispatchStrategy):
    """Execute the command synchronously through the Insight Connect REST API."""

    name = "direct"

    def __init__(self, client: InsightConnectClient, default_domain: Optional[str] = None, prefix: str = "!"):
        self.client = client
        self.default_domain = default_domain
        self.prefix = prefix

    def build_parameters(self, canonical_command: str) -> Dict:
        parts = canonical_command.split()
        verb = parts[0][len(self.prefix):] if parts and parts[0].startswith(self.prefix) else (parts[0] if parts else "")
        target = parts[1] if len(parts) > 1 else ""
        action = Action.from_token(verb)
        if action is None:
            return {"action": "unknown", "target": target, "targetType": "unknown"}

        params: Dict = {"action": action.value.replace("-", "_"), "target": target}
        if action in (Action.ENABLE_AGENT, Action.DISABLE_AGENT):
            params.update(targetType="endpoint", duration=AGENT_DURATION, options={"agentType": AGENT_TYPE})
            return params

        params["targetType"] = "email" if action == Action.REVOKE_SESSIONS else "username"
        params.update(determine_domain(target, self.default_domain))
        if action == Action.RESET_PASSWORD:
            params["options"] = {"forceChangeAtNextLogon": True}
        return params

    def build_payload(self, canonical_command: str) -> Dict:
        return {
            "command": canonical_command,
            "timestamp": iso_utc(),
            "source": "teams-bot",
            "parameters": self.build_parameters(canonical_command),
        }

    async def execute(self, canonical_command: str, department: str) -> DispatchResult:
        payload = self.build_payload(canonical_command)
        try:
            response = await self.client.execute(payload)
        except requests.exceptions.Timeout as e:
            logger.error(f"❌ Insight Connect timed out for '{canonical_command}': {e}")
            return DispatchResult.failed(f"Insight Connect request timed out: {e}", error=DownstreamFailure.code)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"❌ Insight Connect unreachable for '{canonical_command}': {e}")
            return DispatchResult.failed(f"No response received from Insight Connect: {e}",
                                         error=DownstreamFailure.code)

        if response.status_code in (200, 202):
            body = response.body if isinstance(response.body, dict) else {}
            logger.info(f"✅ Insight Connect executed '{canonical_command}'")
            return DispatchResult(
                success=True,
                message=f"Command '{canonical_command}' executed by Insight Connect",
                reference=body.get("commandId") or body.get("id"),
            )

        logger.error(f"❌ Insight Connect error {response.status_code} for '{canonical_command}'")
        return DispatchResult.failed(
            f"Insight Connect API error: {response.status_code} - {response.text[:300]}",
            error=DownstreamFailure.code,
        )
