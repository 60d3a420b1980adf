import re
import unicodedata

MAX_MESSAGE_LENGTH = 4096
MIN_PHONE_MATCH_DIGITS = 8

DIRECT_CHAT_SUFFIXES = ("@s.whatsapp.net", "@lid")
IGNORED_CHAT_SUFFIXES = ("@g.us", "@newsletter")
STATUS_BROADCAST_JID = "status@broadcast"

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_WHITESPACE_RE = re.compile(r"\s+")

GREETINGS = [
    "oi",
    "olá",
    "ola",
    "hey",
    "opa",
    "e ai",
    "eai",
    "bom dia",
    "boa tarde",
    "boa noite",
    "alô",
    "alo",
    "oie",
    "oii",
]

LEAD_KEYWORDS = [
    "chat bot",
    "chatbot",
    "bot multi",
    "multi-tarefas",
    "multi tarefas",
    "interesse",
    "saber mais",
    "tenho interesse",
    "gostaria de saber",
    "quero saber",
    "delivery",
    "automação",
    "automatizar",
    "whatsapp bot",
]

FANPAGE_KEYWORDS = [
    "fanpage",
    "site",
    "página",
    "pagina",
    "demonstração",
    "demonstracao",
    "ver mais",
    "conhecer",
    "acessar",
    "link",
    "endereço",
    "endereco",
    "quero ver",
    "mostrar",
    "próximo passo",
    "proximo passo",
    "como faço",
    "como faco",
]

HUMAN_REQUEST_KEYWORDS = [
    "falar com",
    "quero falar",
    "atendimento humano",
    "pessoa",
    "alguém",
    "alguem",
    "urgente",
    "problema",
    "reclamação",
    "reclamacao",
]


def clean_message(text: object) -> str:
    """Trim, collapse whitespace and drop zero-width characters."""
    if not text or not isinstance(text, str):
        return ""
    cleaned = _ZERO_WIDTH_RE.sub("", text)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:MAX_MESSAGE_LENGTH]


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_matching(text: str) -> str:
    """Casefold, collapse spaces and trim punctuation at both ends."""
    if not text:
        return ""
    normalized = _WHITESPACE_RE.sub(" ", text.strip().casefold())
    # "oi!" -> "oi", "bom dia." -> "bom dia"
    return re.sub(r"^[^\w]+|[^\w]+$", "", normalized)


def extract_phone_number(jid: str) -> str:
    """'5513999999999:12@s.whatsapp.net' -> '5513999999999'."""
    if not jid:
        return ""
    return jid.split("@", 1)[0].split(":", 1)[0]


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def to_jid(phone: str) -> str:
    if "@" in phone:
        return phone
    return f"{digits_only(phone)}@s.whatsapp.net"


def is_group_or_broadcast(jid: str) -> bool:
    if not jid:
        return True
    if jid == STATUS_BROADCAST_JID or "broadcast" in jid:
        return True
    return jid.endswith(IGNORED_CHAT_SUFFIXES)


def is_direct_chat(jid: str) -> bool:
    return bool(jid) and not is_group_or_broadcast(jid) and jid.endswith(DIRECT_CHAT_SUFFIXES)


def phones_match(phone: str, other: str) -> bool:
    """Compare phone numbers tolerating a missing country or area code."""
    a = digits_only(phone)
    b = digits_only(other)
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = sorted((a, b), key=len)
    if len(shorter) < MIN_PHONE_MATCH_DIGITS:
        return False
    return longer.endswith(shorter) or longer.startswith(shorter)


def format_phone_number(phone: str) -> str:
    cleaned = digits_only(phone)
    if len(cleaned) == 11:
        return f"({cleaned[:2]}) {cleaned[2:7]}-{cleaned[7:]}"
    if len(cleaned) == 10:
        return f"({cleaned[:2]}) {cleaned[2:6]}-{cleaned[6:]}"
    return phone


def is_greeting(text: str) -> bool:
    normalized = normalize_for_matching(text)
    return any(normalized == greeting or normalized.startswith(greeting + " ") for greeting in GREETINGS)


def _contains_any(text: str, keywords: list[str]) -> bool:
    if not text or not isinstance(text, str):
        return False
    lowered = text.strip().lower()
    return any(keyword in lowered for keyword in keywords)


def is_new_lead_message(text: str) -> bool:
    return _contains_any(text, LEAD_KEYWORDS)


def wants_fanpage_link(text: str) -> bool:
    return _contains_any(text, FANPAGE_KEYWORDS)


def wants_human(text: str, owner_name: str | None = None) -> bool:
    keywords = HUMAN_REQUEST_KEYWORDS + ([owner_name.lower()] if owner_name else [])
    return _contains_any(text, keywords)
