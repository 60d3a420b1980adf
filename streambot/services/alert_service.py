"""Alert service for notifying the operator over WhatsApp."""

from typing import Optional

from streambot.config import settings
from streambot.logging_config import get_logger
from streambot.services.whatsapp_service import WhatsAppGateway

logger = get_logger("alert_service")

EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{EMOJI.get(level, '📢')} *{level}*\n\n{message}"
    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"
    return text


async def send_alert(
    gateway: WhatsAppGateway,
    level: str,
    message: str,
    context: Optional[dict] = None,
    owner_phone: Optional[str] = None,
) -> bool:
    """Send alert to the operator's own chat.

    Args:
        gateway: Transport used for the alert itself
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict
        owner_phone: Overrides OWNER_PHONE

    Returns:
        True if sent successfully
    """
    target = owner_phone if owner_phone is not None else settings.owner_phone
    if not target:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    try:
        sent = await gateway.send_text(target, format_alert(level, message, context))
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False
    if not sent:
        logger.error(f"Failed to send alert: {level} - {message}")
    return sent


async def alert_warning(
    gateway: WhatsAppGateway,
    message: str,
    context: Optional[dict] = None,
    owner_phone: Optional[str] = None,
) -> bool:
    """Shortcut for WARNING level alert."""
    return await send_alert(gateway, "WARNING", message, context, owner_phone=owner_phone)
