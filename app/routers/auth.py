"""Entra ID sign-in endpoints that open chat sessions."""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
import html
import logging

from app.dependencies import get_services, require_admin_key
from app.services import ServiceContainer
from entra_integrations.entra_auth_client import EntraAuthError

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.get("/login")
async def login(user_id: str = Query(..., min_length=1), services: ServiceContainer = Depends(get_services)):
    return RedirectResponse(services.auth_service.get_auth_url(user_id), status_code=302)


@router.get("/callback", response_class=HTMLResponse)
async def auth_callback(code: str = Query(...), state: str = Query(...),
                        services: ServiceContainer = Depends(get_services)):
    try:
        session = await services.auth_service.handle_auth_callback(code, state)
    except EntraAuthError as e:
        logger.error(f"Error handling auth callback: {e}")
        return HTMLResponse(status_code=401, content="<h1>Authentication failed</h1><p>Please try again from Teams.</p>")

    name = html.escape(session.display_name or session.user_id)
    return HTMLResponse(
        content=f"<h1>Authenticated</h1><p>Welcome {name}. You can return to Teams and run your command.</p>"
    )


@router.post("/logout", dependencies=[Depends(require_admin_key)])
async def logout(user_id: str = Query(..., min_length=1), services: ServiceContainer = Depends(get_services)):
    """Revoke a chat user's session; their next command asks for sign-in again."""
    services.auth_service.sign_out(user_id)
    return {"success": True, "user_id": user_id}
