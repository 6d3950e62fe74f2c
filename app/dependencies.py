"""Shared FastAPI dependencies (service container, admin key guard)."""
import os

from fastapi import Header, HTTPException, Request

from app.config import get_settings
from app.services import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Return the container built during application startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def require_admin_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> bool:
    """Simple header-based admin key guard.

    Development fallback: if no key is set and the environment is not
    production/staging, allow requests to ease local iteration.
    """
    settings = get_settings()
    # Re-read raw env so tests toggling the key are honoured
    key = os.getenv("ADMIN_API_KEY") or settings.admin_api_key
    if not key and settings.environment not in ("production", "staging"):
        return True
    if not key:
        raise HTTPException(status_code=503, detail="Admin API key not configured")
    if not x_api_key or x_api_key != key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return True
