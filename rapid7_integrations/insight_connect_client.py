import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


@dataclass
class ExecutionResponse:
    status_code: int
    body: Any

    @property
    def text(self) -> str:
        return self.body if isinstance(self.body, str) else str(self.body)


class InsightConnectClient:
    """REST client for Rapid7 Insight Connect command execution."""

    def __init__(self, base_url: str, api_key: str, timeout: int = DEFAULT_TIMEOUT):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

        logger.info("🔧 InsightConnectClient initialized:")
        logger.info(f"   Base URL: {self.base_url or 'NOT_SET'}")
        logger.info(f"   API Key: {'***' + (api_key[-4:] if api_key and len(api_key) > 4 else 'NOT_SET')}")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "User-Agent": "AD-Commands-Teams-Bot/1.0",
        }

    def _url(self, path: str) -> str:
        if not self.base_url:
            raise ValueError("RAPID7_BASE_URL is not configured")
        return f"{self.base_url}{path}"

    @staticmethod
    def _body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _post_execute(self, payload: Dict) -> ExecutionResponse:
        response = requests.post(
            self._url("/api/v1/commands/execute"), headers=self.headers, json=payload, timeout=self.timeout
        )
        logger.info(f"📨 Insight Connect response: {response.status_code}")
        return ExecutionResponse(status_code=response.status_code, body=self._body(response))

    async def execute(self, payload: Dict) -> ExecutionResponse:
        """POST a command payload and wait for the definitive HTTP status.

        Transport failures (timeouts included) propagate as
        requests.exceptions.RequestException; nothing is retried.
        """
        logger.info(f"🚀 Executing Insight Connect command: {payload.get('command')}")
        return await asyncio.to_thread(self._post_execute, payload)

    def _get(self, path: str) -> ExecutionResponse:
        response = requests.get(self._url(path), headers=self.headers, timeout=self.timeout)
        return ExecutionResponse(status_code=response.status_code, body=self._body(response))

    async def test_connection(self) -> Dict:
        try:
            result = await asyncio.to_thread(self._get, "/api/v1/health")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Rapid7 connection test failed: {e}")
            return {"success": False, "error": str(e), "message": "Failed to connect to Rapid7"}
        return {
            "success": result.status_code == 200,
            "status": result.status_code,
            "message": "Connection to Rapid7 successful" if result.status_code == 200 else "Connection failed",
        }

    async def get_command_status(self, command_id: str) -> Optional[Dict]:
        result = await asyncio.to_thread(self._get, f"/api/v1/commands/{command_id}/status")
        if result.status_code != 200 or not isinstance(result.body, dict):
            logger.error(f"Error getting command status for {command_id}: {result.status_code}")
            return None
        return {"status": result.body.get("status"), "details": result.body}
