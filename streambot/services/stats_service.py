from typing import Optional

from streambot.runtime import BotRuntime
from streambot.services.normalizer import format_phone_number

EXPIRING_SOON_MINUTES = 10


def get_stats(runtime: BotRuntime) -> dict:
    users = runtime.users.all()
    new_leads = sum(1 for user in users if user.is_new_lead)
    return {
        "totalUsers": len(users),
        "newLeads": new_leads,
        "returningClients": len(users) - new_leads,
        "usersInManualAttendance": len(runtime.attendance.blocked_users()),
        "activeConversations": len(runtime.history.active_phones()),
    }


def blocked_users_view(runtime: BotRuntime) -> list[dict]:
    attendance = runtime.attendance
    rows = []
    for block in attendance.blocked_users():
        remaining = attendance.remaining_minutes(block)
        user = runtime.users.get(block.phone)
        rows.append(
            {
                "phone": block.phone,
                "formattedPhone": format_phone_number(block.phone),
                "name": user.name if user else None,
                "blockedAt": block.blocked_at.isoformat(),
                "blockedBy": block.blocked_by,
                "minutesElapsed": attendance.elapsed_minutes(block),
                "minutesRemaining": remaining,
                "expired": attendance.is_expired(block),
                "expiringSoon": remaining <= EXPIRING_SOON_MINUTES,
            }
        )
    return rows


def user_details(runtime: BotRuntime, phone: str) -> Optional[dict]:
    user = runtime.users.get(phone)
    if user is None:
        return None
    block = runtime.attendance.peek(phone)
    return {
        **user.to_dict(),
        "formattedPhone": format_phone_number(phone),
        "isBlocked": block is not None and not runtime.attendance.is_expired(block),
        "historySize": runtime.history.size(phone),
        "salesContext": runtime.sales.get(phone).to_dict() if user.is_new_lead else None,
    }


def export_data(runtime: BotRuntime) -> dict:
    return {
        "users": [user.to_dict() for user in runtime.users.all()],
        "blockedUsers": blocked_users_view(runtime),
        "stats": get_stats(runtime),
        "exportedAt": runtime.clock().isoformat(),
    }
