from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Below this the gateway sent seconds, at or above it milliseconds
MILLISECOND_TIMESTAMP_THRESHOLD = 10**10


class MessageKey(BaseModel):
    remoteJid: str = ""
    fromMe: bool = False
    id: Optional[str] = None
    participant: Optional[str] = None


class ExtendedText(BaseModel):
    text: Optional[str] = None


class MediaCaption(BaseModel):
    caption: Optional[str] = None


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    conversation: Optional[str] = None
    extendedTextMessage: Optional[ExtendedText] = None
    imageMessage: Optional[MediaCaption] = None
    videoMessage: Optional[MediaCaption] = None
    reactionMessage: Optional[dict] = None
    protocolMessage: Optional[dict] = None

    def extract_text(self) -> str:
        if self.reactionMessage is not None or self.protocolMessage is not None:
            return ""
        if self.conversation:
            return self.conversation
        if self.extendedTextMessage and self.extendedTextMessage.text:
            return self.extendedTextMessage.text
        if self.imageMessage and self.imageMessage.caption:
            return self.imageMessage.caption
        if self.videoMessage and self.videoMessage.caption:
            return self.videoMessage.caption
        return ""


class MessageData(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: MessageKey
    pushName: Optional[str] = None
    message: Optional[MessageContent] = None
    messageTimestamp: Optional[float] = None

    @field_validator("messageTimestamp", mode="before")
    @classmethod
    def normalize_message_timestamp(cls, value: object) -> Optional[float]:
        # Baileys serializes protobuf longs as {"low": ..., "high": ..., "unsigned": ...}
        if isinstance(value, dict):
            value = value.get("low")
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return None
        return None

    def timestamp(self) -> Optional[datetime]:
        if not self.messageTimestamp or self.messageTimestamp < 0:
            return None
        seconds = self.messageTimestamp
        if seconds >= MILLISECOND_TIMESTAMP_THRESHOLD:
            seconds = seconds / 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, ValueError, OSError):
            return None


class ConnectionData(BaseModel):
    model_config = ConfigDict(extra="allow")

    state: Optional[str] = None
    statusReason: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("statusReason", "status_reason", "reason"),
    )
    qr: Optional[str] = None


class WebhookEvent(BaseModel):
    event: str
    instance: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instance", "instanceId", "instance_id"),
    )
    data: Any = None

    @property
    def normalized_event(self) -> str:
        return self.event.strip().lower().replace("_", ".")


class WebhookResponse(BaseModel):
    success: bool
    message: str
    action: Optional[str] = None
    bot_response: Optional[str] = None
