from streambot.services.normalizer import (
    clean_message,
    extract_phone_number,
    format_phone_number,
    is_direct_chat,
    is_greeting,
    is_group_or_broadcast,
    is_new_lead_message,
    normalize_for_matching,
    phones_match,
    to_jid,
    wants_fanpage_link,
    wants_human,
)


class TestCleanMessage:
    def test_collapses_whitespace(self):
        assert clean_message("  quero   saber\n\nmais ") == "quero saber mais"

    def test_drops_zero_width(self):
        assert clean_message("o​i") == "oi"

    def test_non_string(self):
        assert clean_message(None) == ""
        assert clean_message(123) == ""

    def test_truncates(self):
        assert len(clean_message("a" * 5000)) == 4096


class TestPhones:
    def test_extract_phone_number_strips_device(self):
        assert extract_phone_number("5513999999999:12@s.whatsapp.net") == "5513999999999"

    def test_extract_empty(self):
        assert extract_phone_number("") == ""

    def test_to_jid(self):
        assert to_jid("+55 (13) 99999-9999") == "5513999999999@s.whatsapp.net"
        assert to_jid("123@lid") == "123@lid"

    def test_phones_match_exact(self):
        assert phones_match("5513996069536", "5513996069536")

    def test_phones_match_without_country_code(self):
        assert phones_match("5513996069536", "13996069536")

    def test_phones_match_too_short(self):
        assert not phones_match("5513996069536", "9536")

    def test_phones_match_empty(self):
        assert not phones_match("", "5513996069536")

    def test_format_eleven_digits(self):
        assert format_phone_number("13996069536") == "(13) 99606-9536"

    def test_format_ten_digits(self):
        assert format_phone_number("1334567890") == "(13) 3456-7890"

    def test_format_other_lengths_unchanged(self):
        assert format_phone_number("5513996069536") == "5513996069536"


class TestChatKinds:
    def test_group(self):
        assert is_group_or_broadcast("12345-678@g.us")

    def test_status_broadcast(self):
        assert is_group_or_broadcast("status@broadcast")

    def test_newsletter(self):
        assert is_group_or_broadcast("123@newsletter")

    def test_direct(self):
        assert is_direct_chat("5511988887777@s.whatsapp.net")
        assert is_direct_chat("123456@lid")
        assert not is_direct_chat("12345-678@g.us")


class TestMatching:
    def test_normalize_trims_punctuation(self):
        assert normalize_for_matching("  Oi!! ") == "oi"

    def test_greeting_exact(self):
        assert is_greeting("Bom dia!")

    def test_greeting_with_suffix(self):
        assert is_greeting("oi tudo bem")

    def test_not_greeting(self):
        assert not is_greeting("oitenta reais")

    def test_lead_message(self):
        assert is_new_lead_message("Tenho interesse no chatbot")
        assert not is_new_lead_message("qual o horário?")

    def test_fanpage(self):
        assert wants_fanpage_link("me manda o link")

    def test_wants_human(self):
        assert wants_human("quero falar com alguém")

    def test_wants_human_by_owner_name(self):
        assert wants_human("chama o Roberto", owner_name="Roberto")
        assert not wants_human("chama o Roberto")
