from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from urllib.parse import urlencode
import logging

from app.dependencies import get_services
from app.domain.command_parser import is_command
from app.domain.commands import AuthenticationRequired, DispatchResult
from app.schemas import Activity, CommandResponse
from app.services import ServiceContainer
from teams_coordinator.teams_client import RelayDeliveryError

router = APIRouter(prefix="/api", tags=["messages"])
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "AD Commands Bot Help\n\n"
    "User management:\n"
    "{p}unlock-user <username> - Unlock a user account\n"
    "{p}enable-user <username> - Enable a user account\n"
    "{p}disable-user <username> - Disable a user account\n"
    "{p}reset-password <username> - Reset password for next login\n"
    "{p}revoke-sessions <email> - Revoke all user sessions\n\n"
    "Endpoint control:\n"
    "{p}enable-agent <ip/hostname> - Enable Sentinel One agent for 3 hours\n"
    "{p}disable-agent <ip/hostname> - Disable Sentinel One agent for 3 hours\n\n"
    "All commands require MFA authentication. HR team has limited access to "
    "disable-user and revoke-sessions only."
)

WELCOME_TEXT = (
    "Welcome to AD Commands Bot! 🎉 I can help you manage Active Directory users "
    "and endpoints through Teams channels. Type any message to see the available commands."
)


@router.post("/messages")
async def messages_webhook(payload: dict, services: ServiceContainer = Depends(get_services)):
    try:
        activity = Activity.model_validate(payload)
    except ValidationError:
        return JSONResponse(status_code=422, content={"error": "Invalid activity payload"})

    logger.info(f"Incoming activity: type={activity.type} conversation={activity.conversation.id}")
    if activity.type == "conversationUpdate":
        return await _handle_conversation_update(activity, services)
    if activity.type != "message":
        return {"status": "ignored"}

    text = (activity.text or "").strip()
    if not text or not activity.conversation.id:
        return JSONResponse(status_code=400, content={"error": "Invalid message activity"})

    prefix = services.settings.command_prefix
    if not is_command(text, prefix):
        reply = HELP_TEXT.format(p=prefix)
        await _reply(services, activity, reply)
        return CommandResponse(status="help", response=reply)

    logger.info(f"Message received from {activity.sender_name} ({activity.sender_id}) "
                f"in chat {activity.conversation.id}: {text}")
    result = await services.command_processor.process_command(
        text, activity.sender_id, activity.sender_name, activity.conversation.id
    )
    reply = _format_reply(result, services, activity.sender_id)
    await _reply(services, activity, reply)
    return CommandResponse(success=result.success, response=reply, error=result.error)


async def _handle_conversation_update(activity: Activity, services: ServiceContainer):
    bot_id = activity.recipient.id if activity.recipient else None
    newcomers = [m for m in activity.members_added if m.id != bot_id]
    if not newcomers:
        return {"status": "ignored"}
    await _reply(services, activity, WELCOME_TEXT)
    return CommandResponse(status="welcomed", response=WELCOME_TEXT)


def _format_reply(result: DispatchResult, services: ServiceContainer, user_id: str) -> str:
    if result.success:
        return f"✅ {result.message}"
    if result.error == AuthenticationRequired.code:
        login_url = f"{services.settings.bot_endpoint}/auth/login?{urlencode({'user_id': user_id})}"
        return f"🔐 {result.message}\nSign in here: {login_url}"
    return f"❌ {result.message}"


async def _reply(services: ServiceContainer, activity: Activity, text: str) -> None:
    try:
        await services.teams_client.send_message(text, activity.conversation.id, activity.service_url)
    except RelayDeliveryError as e:
        # The command outcome stands; only the chat reply is lost
        logger.error(f"❌ Could not deliver reply to {activity.conversation.id}: {e}")
