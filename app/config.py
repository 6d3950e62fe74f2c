"""Configuration module centralizing environment access.

A plain Settings object instead of ad-hoc os.getenv calls scattered across
clients. Values are read once and cached by get_settings().
"""
import os
from typing import Optional, Set


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        # Core
        inferred_testing = (
            os.getenv("PYTEST_CURRENT_TEST")
            or os.getenv("ENVIRONMENT") == "testing"
            or os.getenv("TESTING") == "1"
        )
        self.environment: str = "testing" if inferred_testing else os.getenv("ENVIRONMENT", "development")
        self.port: int = _int_env("PORT", 3978)

        # Database
        self.database_url: str = os.getenv("DATABASE_URL") or "sqlite:///./ad-commands.db"

        # Entra ID app registration (user sign-in + Graph directory lookups)
        self.tenant_id: Optional[str] = os.getenv("TENANT_ID")
        self.client_id: Optional[str] = os.getenv("CLIENT_ID")
        self.client_secret: Optional[str] = os.getenv("CLIENT_SECRET")
        self.bot_endpoint: str = (os.getenv("BOT_ENDPOINT") or f"http://localhost:{self.port}").rstrip("/")

        # Bot Framework / Teams
        self.bot_id: Optional[str] = os.getenv("BOT_ID")
        self.bot_password: Optional[str] = os.getenv("BOT_PASSWORD")
        self.teams_service_url: str = os.getenv("TEAMS_SERVICE_URL", "https://smba.trafficmanager.net/teams")
        self.it_team_chat_id: Optional[str] = os.getenv("IT_TEAM_CHAT_ID") or None
        self.hr_team_chat_id: Optional[str] = os.getenv("HR_TEAM_CHAT_ID") or None

        # Sessions
        self.session_timeout_seconds: int = _int_env("SESSION_TIMEOUT", 3600)
        self.session_cleanup_interval_seconds: int = _int_env("SESSION_CLEANUP_INTERVAL", 300)

        # Commands / dispatch
        self.command_prefix: str = os.getenv("COMMAND_PREFIX", "!")
        self.dispatch_mode: str = os.getenv("DISPATCH_MODE", "relay").strip().lower()

        # Rapid7 Insight Connect (direct execution)
        self.rapid7_base_url: Optional[str] = os.getenv("RAPID7_BASE_URL")
        self.rapid7_api_key: Optional[str] = os.getenv("RAPID7_API_KEY")
        self.rapid7_timeout_seconds: int = _int_env("RAPID7_TIMEOUT", 30)

        # Directory domains
        self.domain_1: Optional[str] = os.getenv("DOMAIN_1")
        self.domain_2: Optional[str] = os.getenv("DOMAIN_2")

        # Admin protection for audit endpoints
        self.admin_api_key: Optional[str] = os.getenv("ADMIN_API_KEY")

    @property
    def recognized_chats(self) -> Set[str]:
        return {chat for chat in (self.it_team_chat_id, self.hr_team_chat_id) if chat}


_SETTINGS_CACHE: Optional[Settings] = None


def get_settings(refresh: bool = False) -> Settings:
    """Return a (possibly cached) Settings instance.

    Pass refresh=True (or set env FORCE_SETTINGS_REFRESH=1) in tests after
    modifying environment variables to force re-evaluation.
    """
    global _SETTINGS_CACHE
    if refresh or os.getenv("FORCE_SETTINGS_REFRESH") == "1" or _SETTINGS_CACHE is None:
        _SETTINGS_CACHE = Settings()
    return _SETTINGS_CACHE
