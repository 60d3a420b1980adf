from dataclasses import dataclass, field
from enum import Enum

from streambot.logging_config import get_logger
from streambot.services.normalizer import strip_accents

logger = get_logger("intent_service")

SHORT_TEXT_LENGTH = 10


class Intent(str, Enum):
    PROSPECT = "PROSPECT"  # Interested in buying / learning about the product
    SUPPORT = "SUPPORT"  # Already a customer with a technical problem
    GENERAL = "GENERAL"  # Greetings, thanks, small talk


PROSPECT_KEYWORDS = [
    "preço",
    "valor",
    "quanto custa",
    "plano",
    "planos",
    "assinatura",
    "contratar",
    "comprar",
    "adquirir",
    "teste grátis",
    "trial",
    "o que é",
    "como funciona",
    "funcionalidades",
    "recursos",
    "benefícios",
    "vantagens",
    "diferenciais",
    "quero conhecer",
    "tenho interesse",
    "gostaria de saber",
    "preciso de uma solução",
    "estou procurando",
    "para minha loja",
    "meu negócio",
    "minha empresa",
    "sou lojista",
    "tenho uma loja",
    "vendo produtos",
    "comparado com",
    "diferença entre",
    "melhor que",
    "demonstração",
    "demo",
    "apresentação",
    "mostrar como funciona",
]

SUPPORT_KEYWORDS = [
    "configurar",
    "configuração",
    "como configuro",
    "setup",
    "conectar whatsapp",
    "qr code",
    "escanear",
    "código qr",
    "chave de ia",
    "api key",
    "token",
    "groq",
    "openai",
    "como adiciono a chave",
    "onde coloco",
    "segmento",
    "segmentação",
    "categoria da loja",
    "tipo de negócio",
    "nicho",
    "catálogo",
    "produtos",
    "adicionar produto",
    "importar produtos",
    "excel",
    "planilha",
    "csv",
    "erro",
    "bug",
    "não funciona",
    "não está funcionando",
    "não conecta",
    "desconectou",
    "caiu",
    "como usar",
    "como faço para",
    "ajuda com",
    "tutorial",
    "passo a passo",
    "não consigo",
    "split",
    "comissão",
    "mercado pago",
    "pagamento",
    "integração",
    "integrar",
    "erp",
    "pdv",
    "delivery",
    "ifood",
    "rappi",
    "conectar sistema",
]

GENERAL_KEYWORDS = [
    "oi",
    "olá",
    "bom dia",
    "boa tarde",
    "boa noite",
    "hey",
    "ola",
    "oie",
    "tchau",
    "até logo",
    "até mais",
    "falou",
    "valeu",
    "obrigado",
    "obrigada",
    "vlw",
    "agradeço",
    "tudo bem",
    "como vai",
    "beleza",
    "e aí",
]

# Tie-break hints when both prospect and support keywords matched
PROSPECT_TIEBREAK = ("quero", "preciso", "gostaria")
SUPPORT_TIEBREAK = ("erro", "configurar", "conectar")


def _normalize(text: str) -> str:
    return strip_accents(text.strip().lower())


def _compile(keywords: list[str]) -> list[str]:
    # dict.fromkeys keeps order while folding keywords that only differ by accents
    return list(dict.fromkeys(_normalize(keyword) for keyword in keywords))


_PROSPECT = _compile(PROSPECT_KEYWORDS)
_SUPPORT = _compile(SUPPORT_KEYWORDS)
_GENERAL = _compile(GENERAL_KEYWORDS)


@dataclass
class IntentClassification:
    intent: Intent
    scores: dict[str, int] = field(default_factory=dict)
    matches: dict[str, list[str]] = field(default_factory=dict)


def _matches(text: str, keywords: list[str]) -> list[str]:
    return [keyword for keyword in keywords if keyword in text]


def _decide(text: str, prospect: int, support: int, general: int) -> Intent:
    if len(text) < SHORT_TEXT_LENGTH and general > 0:
        return Intent.GENERAL
    if support > prospect and support > general:
        return Intent.SUPPORT
    if prospect > support and prospect > general:
        return Intent.PROSPECT
    if general > 0 and prospect == 0 and support == 0:
        return Intent.GENERAL
    if prospect > 0 and support > 0:
        if any(word in text for word in PROSPECT_TIEBREAK):
            return Intent.PROSPECT
        if any(word in text for word in SUPPORT_TIEBREAK):
            return Intent.SUPPORT
    return Intent.GENERAL


def classify_detailed(text: object) -> IntentClassification:
    """Score text against the three keyword sets and explain the decision."""
    if not text or not isinstance(text, str):
        return IntentClassification(intent=Intent.GENERAL)

    normalized = _normalize(text)
    matches = {
        Intent.PROSPECT.value: _matches(normalized, _PROSPECT),
        Intent.SUPPORT.value: _matches(normalized, _SUPPORT),
        Intent.GENERAL.value: _matches(normalized, _GENERAL),
    }
    scores = {name: len(found) for name, found in matches.items()}
    intent = _decide(
        normalized,
        scores[Intent.PROSPECT.value],
        scores[Intent.SUPPORT.value],
        scores[Intent.GENERAL.value],
    )
    logger.debug(
        f"Intent classified: {intent.value}",
        extra={"context": {"scores": scores, "text": normalized[:50]}},
    )
    return IntentClassification(intent=intent, scores=scores, matches=matches)


def classify(text: object) -> Intent:
    """Return PROSPECT, SUPPORT or GENERAL. Never raises; bad input is GENERAL."""
    return classify_detailed(text).intent
