from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from streambot.config import settings
from streambot.dependencies import get_dispatcher, get_runtime
from streambot.logging_config import get_logger
from streambot.runtime import BotRuntime
from streambot.schemas.webhook import ConnectionData, MessageData, WebhookEvent, WebhookResponse
from streambot.services.dispatch_service import Dispatcher, InboundEvent
from streambot.services.normalizer import is_group_or_broadcast

logger = get_logger("webhook")

router = APIRouter()

MESSAGE_EVENTS = {"messages.upsert"}
CONNECTION_EVENTS = {"connection.update"}
LOGGED_OUT_STATUS = 401


def _get_request_webhook_secret(request: Request) -> str | None:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def require_webhook_secret(request: Request) -> None:
    expected = (settings.webhook_secret or "").strip()
    if not expected:
        return
    provided = _get_request_webhook_secret(request)
    if not provided or provided != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


def to_inbound_event(data: MessageData) -> InboundEvent:
    jid = data.key.remoteJid
    return InboundEvent(
        sender_id=jid,
        is_from_self=data.key.fromMe,
        is_group_or_broadcast=is_group_or_broadcast(jid),
        text=data.message.extract_text() if data.message else "",
        push_name=data.pushName,
        message_id=data.key.id,
        timestamp=data.timestamp(),
    )


def _message_items(data) -> list:
    # Gateways send either one message or {"messages": [...]}
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("messages"), list):
        return data["messages"]
    return [data]


def update_connection(runtime: BotRuntime, data: ConnectionData) -> None:
    connection = runtime.connection
    if data.state:
        connection.state = data.state
    connection.status_reason = data.statusReason
    connection.qr_pending = bool(data.qr)
    connection.updated_at = datetime.now(timezone.utc)

    context = {"state": data.state, "status_reason": data.statusReason}
    if data.state == "close" and data.statusReason == LOGGED_OUT_STATUS:
        logger.error("WhatsApp session logged out, new QR pairing required", extra={"context": context})
    elif data.qr:
        logger.info("QR code received, waiting for pairing", extra={"context": context})
    else:
        logger.info(f"Connection update: {data.state}", extra={"context": context})


@router.post("/webhook", response_model=WebhookResponse, dependencies=[Depends(require_webhook_secret)])
async def handle_webhook(
    payload: WebhookEvent,
    runtime: BotRuntime = Depends(get_runtime),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Receive gateway events: message upserts and connection updates."""
    event_name = payload.normalized_event

    if event_name in CONNECTION_EVENTS:
        try:
            update_connection(runtime, ConnectionData.model_validate(payload.data or {}))
        except ValidationError as e:
            logger.warning(f"Invalid connection update: {e}")
            return WebhookResponse(success=False, message="Invalid connection payload")
        return WebhookResponse(success=True, message="Connection updated", action="connection")

    if event_name not in MESSAGE_EVENTS:
        logger.debug(f"Ignoring webhook event: {payload.event}")
        return WebhookResponse(success=True, message="Event ignored", action="ignored")

    last_result = None
    for item in _message_items(payload.data):
        try:
            event = to_inbound_event(MessageData.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed message payload: {e}")
            continue
        except Exception as e:
            logger.error(f"Failed to parse message payload: {e}", exc_info=True)
            continue
        last_result = await dispatcher.handle(event)

    if last_result is None:
        return WebhookResponse(success=True, message="No processable message", action="ignored")
    return WebhookResponse(
        success=True,
        message="Message processed",
        action=last_result.action.value,
        bot_response=last_result.reply,
    )
