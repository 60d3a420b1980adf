from streambot.services.attendance_service import AttendanceBlock, AttendanceStore
from streambot.services.history_service import HistoryCache
from streambot.services.intent_service import Intent, classify
from streambot.services.result import Result
from streambot.services.user_store import UserRecord, UserStore

__all__ = [
    "AttendanceBlock",
    "AttendanceStore",
    "HistoryCache",
    "Intent",
    "Result",
    "UserRecord",
    "UserStore",
    "classify",
]
