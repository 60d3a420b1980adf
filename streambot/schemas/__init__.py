from streambot.schemas.admin import AdminActionResponse, AttendanceRequest, KnowledgeEntryCreate, KnowledgeEntryResponse
from streambot.schemas.webhook import MessageData, WebhookEvent, WebhookResponse

__all__ = [
    "AdminActionResponse",
    "AttendanceRequest",
    "KnowledgeEntryCreate",
    "KnowledgeEntryResponse",
    "MessageData",
    "WebhookEvent",
    "WebhookResponse",
]
