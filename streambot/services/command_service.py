import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from streambot.config import settings
from streambot.logging_config import get_logger
from streambot.services.attendance_service import AttendanceStore
from streambot.services.normalizer import MIN_PHONE_MATCH_DIGITS, format_phone_number, phones_match
from streambot.services.result import Result

logger = get_logger("command_service")

_PHONE_ARG_RE = re.compile(r"\+?\d[\d\s().-]{%d,}" % (MIN_PHONE_MATCH_DIGITS - 2))

ASSUME_VARIATIONS = [
    "assumir",
    "assumir atendimento",
    "assumir manual",
    "bloquear bot",
    "pausar bot",
    "bloquear",
]

RELEASE_VARIATIONS = [
    "liberar",
    "liberar bot",
    "reativar bot",
    "ativar bot",
    "desbloquear bot",
    "desbloquear",
    "ativar",
]

CUSTOMER_ASSUMED_NOTICE = "👤 Um atendente humano assumiu esta conversa. Aguarde!"


class Command(str, Enum):
    ASSUME = "ASSUME"
    RELEASE = "RELEASE"


@dataclass
class ParsedCommand:
    is_command: bool
    command: Optional[Command] = None
    target_phone: Optional[str] = None


@dataclass
class CommandReply:
    reply: str
    target_phone: str
    customer_notice: Optional[str] = None


NOT_A_COMMAND = ParsedCommand(is_command=False)


def _variations(configured: str, builtin: list[str]) -> list[str]:
    bare = re.sub(r"^[/.]+", "", configured.strip().lower())
    found = [configured.strip().lower(), bare, f"/{bare}", f"./{bare}"]
    for phrase in builtin:
        found += [phrase, f"/{phrase}", f"./{phrase}"]
    # Longest first so "assumir atendimento" wins over "assumir"
    return sorted(set(v for v in found if v), key=len, reverse=True)


def _match(text: str, variations: list[str]) -> Optional[str]:
    for variation in variations:
        if text == variation or text.startswith(variation + " "):
            return variation
    return None


def _target_from_args(args: str) -> Optional[str]:
    match = _PHONE_ARG_RE.search(args)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(0))
    return digits if len(digits) >= MIN_PHONE_MATCH_DIGITS else None


def parse_command(
    text: object,
    assume_command: str | None = None,
    release_command: str | None = None,
) -> ParsedCommand:
    """Recognize assume/release directives, tolerating typos and a trailing phone."""
    if not text or not isinstance(text, str):
        return NOT_A_COMMAND
    message = text.strip().lower()
    if not message:
        return NOT_A_COMMAND

    candidates = [
        (Command.ASSUME, _variations(assume_command or settings.command_assume, ASSUME_VARIATIONS)),
        (Command.RELEASE, _variations(release_command or settings.command_release, RELEASE_VARIATIONS)),
    ]
    for command, variations in candidates:
        matched = _match(message, variations)
        if matched is not None:
            args = message[len(matched) :]
            logger.debug(f"Command detected: {command.value}", extra={"context": {"matched": matched}})
            return ParsedCommand(is_command=True, command=command, target_phone=_target_from_args(args))
    return NOT_A_COMMAND


def is_authorized(sender_phone: str, owner_phone: str | None = None) -> bool:
    owner = owner_phone if owner_phone is not None else settings.owner_phone
    return bool(owner) and phones_match(sender_phone, owner)


def usage_reply(command: Command) -> str:
    name = "assumir" if command == Command.ASSUME else "liberar"
    return f"❌ Formato incorreto.\n\nUso: /{name} [número]\nExemplo: /{name} 5513996069536"


def rejection_reply() -> str:
    return "⛔ Você não tem permissão para usar este comando."


def execute_command(
    parsed: ParsedCommand,
    target_phone: str,
    attendance: AttendanceStore,
    operator_name: str | None = None,
) -> Result[CommandReply]:
    """Apply an authorized command to ``target_phone``.

    Failures still carry the reply to show the operator.
    """
    if not parsed.is_command or parsed.command is None:
        return Result.failure("Not a command", code="not_a_command")

    shown = format_phone_number(target_phone)
    operator = operator_name or settings.owner_name

    if parsed.command == Command.ASSUME:
        attendance.block(target_phone, operator, force=True)
        minutes = int(attendance.block_duration.total_seconds() // 60)
        reply = (
            f"✅ IA BLOQUEADA para {shown}\n\n"
            f"🤝 Você está em atendimento manual por {minutes} minutos.\n\n"
            f"💡 Use /liberar {target_phone} para devolver ao bot."
        )
        logger.info("Manual attendance assumed by command", extra={"context": {"phone": target_phone}})
        return Result.success(CommandReply(reply=reply, target_phone=target_phone, customer_notice=CUSTOMER_ASSUMED_NOTICE))

    if not attendance.check_and_expire(target_phone):
        reply = f"ℹ️ O bot já está ativo para {shown}."
        return Result.failure(
            "Bot already active",
            code="not_blocked",
            value=CommandReply(reply=reply, target_phone=target_phone),
        )

    attendance.unblock(target_phone)
    reply = f"✅ IA LIBERADA para {shown}\n\n🤖 Bot voltou ao atendimento automático."
    logger.info("Manual attendance released by command", extra={"context": {"phone": target_phone}})
    return Result.success(CommandReply(reply=reply, target_phone=target_phone))
