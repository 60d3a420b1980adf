from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from streambot.config import settings
from streambot.database import get_db
from streambot.dependencies import get_runtime
from streambot.logging_config import get_logger
from streambot.runtime import BotRuntime
from streambot.schemas.admin import (
    AdminActionResponse,
    AttendanceRequest,
    KnowledgeEntryCreate,
    KnowledgeEntryResponse,
)
from streambot.services import knowledge_service
from streambot.services.command_service import Command, ParsedCommand, execute_command
from streambot.services.normalizer import digits_only, phones_match
from streambot.services.stats_service import blocked_users_view, export_data, user_details

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    _require_admin_token(x_admin_token)


def _known_phone(runtime: BotRuntime, phone: str) -> str:
    digits = digits_only(phone)
    for user in runtime.users.all():
        if phones_match(user.phone, digits):
            return user.phone
    return digits


@router.get("/blocked", dependencies=[Depends(admin_token)])
async def list_blocked(runtime: BotRuntime = Depends(get_runtime)):
    blocked = blocked_users_view(runtime)
    return {"count": len(blocked), "blocked": blocked}


@router.get("/users", dependencies=[Depends(admin_token)])
async def list_users(runtime: BotRuntime = Depends(get_runtime)):
    users = [user.to_dict() for user in runtime.users.all()]
    return {"count": len(users), "users": users}


@router.get("/users/{phone}", dependencies=[Depends(admin_token)])
async def get_user(phone: str, runtime: BotRuntime = Depends(get_runtime)):
    details = user_details(runtime, _known_phone(runtime, phone))
    if details is None:
        raise HTTPException(status_code=404, detail="User not found")
    return details


@router.delete("/users/{phone}", response_model=AdminActionResponse, dependencies=[Depends(admin_token)])
async def clear_user(phone: str, runtime: BotRuntime = Depends(get_runtime)):
    """Forget a user entirely: record, block, history and sales context."""
    key = _known_phone(runtime, phone)
    runtime.attendance.remove(key)
    existed = runtime.users.remove(key)
    runtime.history.clear(key)
    runtime.sales.clear(key)
    if not existed:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User cleared by admin", extra={"context": {"phone": key}})
    return AdminActionResponse(success=True, message="User cleared", phone=key)


def _run_attendance_command(command: Command, request: AttendanceRequest, runtime: BotRuntime):
    key = _known_phone(runtime, request.phone)
    result = execute_command(ParsedCommand(is_command=True, command=command), key, runtime.attendance, request.blocked_by)
    message = result.value.reply if result.value else (result.error or "")
    return AdminActionResponse(success=result.ok, message=message, phone=key)


@router.post("/assume", response_model=AdminActionResponse, dependencies=[Depends(admin_token)])
async def assume_conversation(request: AttendanceRequest, runtime: BotRuntime = Depends(get_runtime)):
    return _run_attendance_command(Command.ASSUME, request, runtime)


@router.post("/release", response_model=AdminActionResponse, dependencies=[Depends(admin_token)])
async def release_conversation(request: AttendanceRequest, runtime: BotRuntime = Depends(get_runtime)):
    return _run_attendance_command(Command.RELEASE, request, runtime)


@router.post("/sweep", dependencies=[Depends(admin_token)])
async def sweep_now(runtime: BotRuntime = Depends(get_runtime)):
    return {
        "expired_blocks": runtime.attendance.sweep_expired(),
        "expired_histories": runtime.history.sweep_expired(),
        "stale_debounce_entries": runtime.debounce.sweep(),
    }


@router.get("/export", dependencies=[Depends(admin_token)])
async def export_snapshot(runtime: BotRuntime = Depends(get_runtime)):
    return export_data(runtime)


@router.get("/llm/stats", dependencies=[Depends(admin_token)])
async def llm_stats(runtime: BotRuntime = Depends(get_runtime)):
    stats = getattr(runtime.llm, "stats", None)
    return {
        "llm": stats.to_dict() if stats is not None else None,
        "sales_stages": runtime.sales.stage_counts(),
    }


@router.post("/knowledge", response_model=KnowledgeEntryResponse, dependencies=[Depends(admin_token)])
def add_knowledge(data: KnowledgeEntryCreate, db: Session = Depends(get_db)):
    entry = knowledge_service.add_entry(
        db,
        category=data.category,
        title=data.title,
        content=data.content,
        keywords=data.keywords,
    )
    return KnowledgeEntryResponse(id=entry.id, category=entry.category, title=entry.title, active=entry.active)


@router.delete("/knowledge/{entry_id}", response_model=AdminActionResponse, dependencies=[Depends(admin_token)])
def deactivate_knowledge(entry_id: str, db: Session = Depends(get_db)):
    if not knowledge_service.deactivate_entry(db, entry_id):
        raise HTTPException(status_code=404, detail="Knowledge entry not found")
    return AdminActionResponse(success=True, message="Knowledge entry deactivated")
