from streambot.models.knowledge_entry import KnowledgeEntry
from streambot.models.session_credential import SessionCredential

__all__ = [
    "KnowledgeEntry",
    "SessionCredential",
]
