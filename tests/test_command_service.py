import pytest

from streambot.services.attendance_service import AttendanceStore
from streambot.services.command_service import (
    CUSTOMER_ASSUMED_NOTICE,
    Command,
    ParsedCommand,
    execute_command,
    is_authorized,
    parse_command,
    rejection_reply,
    usage_reply,
)
from streambot.services.user_store import UserStore

from .conftest import FakeClock

OWNER = "5513996069536"
TARGET = "5511988887777"


class TestParseCommand:
    @pytest.mark.parametrize("text", ["/assumir", "./assumir", "assumir", "  /ASSUMIR  ", "assumir atendimento"])
    def test_assume_variations(self, text):
        parsed = parse_command(text, "/assumir", "/liberar")
        assert parsed.is_command is True
        assert parsed.command == Command.ASSUME
        assert parsed.target_phone is None

    @pytest.mark.parametrize("text", ["/liberar", "./liberar", "liberar bot", "reativar bot"])
    def test_release_variations(self, text):
        parsed = parse_command(text, "/assumir", "/liberar")
        assert parsed.command == Command.RELEASE

    def test_target_phone(self):
        parsed = parse_command("/liberar 5511988887777", "/assumir", "/liberar")
        assert parsed.target_phone == TARGET

    def test_formatted_target_phone(self):
        parsed = parse_command("liberar bot +55 11 98888-7777", "/assumir", "/liberar")
        assert parsed.command == Command.RELEASE
        assert parsed.target_phone == TARGET

    def test_short_number_is_not_a_target(self):
        parsed = parse_command("/assumir 123", "/assumir", "/liberar")
        assert parsed.is_command is True
        assert parsed.target_phone is None

    def test_custom_command(self):
        parsed = parse_command("!pausar", "!pausar", "/liberar")
        assert parsed.command == Command.ASSUME

    @pytest.mark.parametrize("text", ["assumirx", "quero assumir", "", None, 42])
    def test_not_commands(self, text):
        assert parse_command(text, "/assumir", "/liberar").is_command is False


class TestAuthorization:
    def test_owner(self):
        assert is_authorized(OWNER, OWNER) is True

    def test_owner_without_country_code(self):
        assert is_authorized("13996069536", OWNER) is True

    def test_other_phone(self):
        assert is_authorized(TARGET, OWNER) is False

    def test_no_owner_configured(self):
        assert is_authorized(OWNER, "") is False

    def test_replies(self):
        assert "/liberar [número]" in usage_reply(Command.RELEASE)
        assert "permissão" in rejection_reply()


class TestExecuteCommand:
    @pytest.fixture
    def attendance(self):
        clock = FakeClock()
        users = UserStore(clock=clock)
        users.record_inbound(TARGET, "Maria")
        return AttendanceStore(users, clock=clock)

    def test_assume_forces_block(self, attendance):
        result = execute_command(ParsedCommand(True, Command.ASSUME), TARGET, attendance, "Roberto")

        assert result.ok is True
        assert "IA BLOQUEADA" in result.value.reply
        assert "60 minutos" in result.value.reply
        assert result.value.customer_notice == CUSTOMER_ASSUMED_NOTICE
        assert attendance.check_and_expire(TARGET) is True
        assert attendance.peek(TARGET).blocked_by == "Roberto"

    def test_release(self, attendance):
        attendance.block(TARGET, "Roberto", force=True)
        result = execute_command(ParsedCommand(True, Command.RELEASE), TARGET, attendance)

        assert result.ok is True
        assert "IA LIBERADA" in result.value.reply
        assert result.value.customer_notice is None
        assert attendance.check_and_expire(TARGET) is False

    def test_release_when_active(self, attendance):
        result = execute_command(ParsedCommand(True, Command.RELEASE), TARGET, attendance)

        assert result.ok is False
        assert result.error_code == "not_blocked"
        assert "já está ativo" in result.value.reply

    def test_not_a_command(self, attendance):
        result = execute_command(ParsedCommand(False), TARGET, attendance)
        assert result.error_code == "not_a_command"
