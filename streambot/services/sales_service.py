"""Consultative sales context kept for leads between prompts.

The stage only shapes the instructions given to the LLM; it never gates
dispatch. Contexts live as long as the conversation history (idle TTL).
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from streambot.logging_config import get_logger
from streambot.services.history_service import DEFAULT_MAX_CONVERSATIONS, idle_ttl_cache
from streambot.services.normalizer import strip_accents

logger = get_logger("sales_service")

DISCOVERY_QUESTIONS = 3

PLAN_BASIC = "Básico (R$ 299)"
PLAN_COMPLETE = "Completo (R$ 499)"

PRICE_KEYWORDS = ["preço", "preco", "valor", "custa", "quanto é", "quanto e"]
COMPARISON_KEYWORDS = ["diferença", "diferenca", "comparar", "qual melhor", "qual escolher"]
OBJECTION_KEYWORDS = ["caro", "muito dinheiro", "não tenho", "nao tenho", "pensando"]
INTEREST_KEYWORDS = [
    "quero",
    "interessado",
    "gostei",
    "vou querer",
    "como faço",
    "como faco",
    "próximo passo",
    "proximo passo",
]
PLAN_KEYWORDS = ["básico", "basico", "completo", "r$ 299", "r$ 499"]
QUESTION_MARKERS = ["?", "qual", "como", "quanto"]

# Needs that call for the complete plan vs. a lean start
COMPLETE_PLAN_SIGNALS = [
    "pizzaria",
    "meio a meio",
    "varios bairros",
    "cashback",
    "fidelizacao",
    "cupom",
    "muitos pedidos",
    "completo",
]
BASIC_PLAN_SIGNALS = ["basico", "simples", "comecando", "pequeno", "poucos pedidos"]


class SalesStage(str, Enum):
    DISCOVERY = "discovery"
    RECOMMENDATION = "recommendation"
    OBJECTION = "objection"
    CLOSING = "closing"


@dataclass
class SalesContext:
    stage: SalesStage = SalesStage.DISCOVERY
    recommended_plan: Optional[str] = None
    detected_needs: list[str] = field(default_factory=list)
    objections: list[str] = field(default_factory=list)
    questions_asked: int = 0
    plan_mentioned: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data


@dataclass
class MessageAnalysis:
    has_question: bool = False
    has_price_question: bool = False
    has_comparison_question: bool = False
    has_objection: bool = False
    shows_interest: bool = False
    mentions_plan: bool = False
    detected_plan: Optional[str] = None


def _has_any(text: str, keywords: list[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def detect_recommended_plan(message: str) -> Optional[str]:
    text = strip_accents((message or "").lower())
    if _has_any(text, COMPLETE_PLAN_SIGNALS):
        return PLAN_COMPLETE
    if _has_any(text, BASIC_PLAN_SIGNALS):
        return PLAN_BASIC
    return None


def analyze_message(message: str) -> MessageAnalysis:
    text = (message or "").lower()
    return MessageAnalysis(
        has_question=_has_any(text, QUESTION_MARKERS),
        has_price_question=_has_any(text, PRICE_KEYWORDS),
        has_comparison_question=_has_any(text, COMPARISON_KEYWORDS),
        has_objection=_has_any(text, OBJECTION_KEYWORDS),
        shows_interest=_has_any(text, INTEREST_KEYWORDS),
        mentions_plan=_has_any(text, PLAN_KEYWORDS),
        detected_plan=detect_recommended_plan(message),
    )


def advance(context: SalesContext, message: str, analysis: MessageAnalysis, is_first_message: bool) -> SalesContext:
    """Move the context one step given the lead's latest message."""
    if is_first_message:
        context.stage = SalesStage.DISCOVERY
        context.questions_asked = 0
    elif analysis.detected_plan and context.stage == SalesStage.DISCOVERY:
        context.stage = SalesStage.RECOMMENDATION
        context.recommended_plan = analysis.detected_plan
        context.detected_needs.append(analysis.detected_plan)
    elif context.stage == SalesStage.DISCOVERY:
        context.questions_asked += 1

    if analysis.has_objection and context.stage == SalesStage.RECOMMENDATION:
        context.stage = SalesStage.OBJECTION
        context.objections.append(message)

    if analysis.shows_interest and context.stage in (SalesStage.RECOMMENDATION, SalesStage.OBJECTION):
        context.stage = SalesStage.CLOSING

    if analysis.mentions_plan:
        context.plan_mentioned = True
    return context


def stage_instructions(context: SalesContext, analysis: MessageAnalysis, customer_name: str) -> str:
    lines = ["", "", "## 🎯 CONTEXTO ATUAL DA VENDA:", ""]

    if context.stage == SalesStage.DISCOVERY:
        lines.append(f"**Estágio:** DESCOBERTA ({context.questions_asked}/{DISCOVERY_QUESTIONS} perguntas feitas)")
        lines.append("")
        if context.questions_asked == 0:
            lines += [
                f"**Ação:** Cumprimente {customer_name} e faça 2-3 perguntas para entender:",
                "- Tipo de negócio e se já funciona",
                "- Volume de pedidos por dia",
                "- Necessidades específicas (pizzaria? vários bairros? fidelização?)",
                "",
                "**Importante:** NÃO mencione preços ainda! Foque em entender necessidades.",
            ]
        elif context.questions_asked < DISCOVERY_QUESTIONS and not analysis.detected_plan:
            lines += [
                "**Ação:** Continue a descoberta. Faça mais 1-2 perguntas para clarificar necessidades.",
                "Ainda não recomende plano.",
            ]
        else:
            lines.append("**Ação:** Você tem informações suficientes! Parta para RECOMENDAÇÃO.")
            if analysis.detected_plan:
                lines.append(f"**Plano detectado:** {analysis.detected_plan}")

    elif context.stage == SalesStage.RECOMMENDATION:
        lines += ["**Estágio:** RECOMENDAÇÃO", f"**Plano recomendado:** {context.recommended_plan or 'A definir'}", ""]
        if not context.plan_mentioned:
            lines += [
                f"**Ação:** AGORA sim, recomende o plano {context.recommended_plan or 'adequado'}!",
                "- Explique POR QUÊ é ideal para ele",
                "- Destaque 3-4 benefícios principais",
                "- Mencione valor E economia",
            ]
        elif analysis.has_comparison_question:
            lines.append("**Ação:** Cliente quer comparar planos. Explique de forma clara e direta as diferenças.")
        else:
            lines.append("**Ação:** Responda dúvidas e reforce benefícios do plano recomendado.")

    elif context.stage == SalesStage.OBJECTION:
        lines += [
            "**Estágio:** TRATAMENTO DE OBJEÇÕES",
            f"**Plano recomendado:** {context.recommended_plan}",
            "",
            "**Ação:** Continue tratando objeções com:",
            "- Empatia e validação",
            "- Dados concretos (ROI, economia)",
            "- Prova social ou garantias",
            "- Oferta de teste gratuito",
        ]

    elif context.stage == SalesStage.CLOSING:
        lines += [
            "**Estágio:** FECHAMENTO",
            f"**Plano escolhido:** {context.recommended_plan}",
            "",
            "**Ação:** Conduza ao fechamento:",
            "1. Parabenize a escolha",
            "2. Reforce 2-3 benefícios principais",
            "3. Passe próximos passos claros",
            "4. Envie link da fanpage",
        ]

    if analysis.has_price_question and context.stage == SalesStage.DISCOVERY:
        lines += [
            "",
            "⚠️ **Alerta:** Cliente perguntou sobre preço MAS ainda está em descoberta!",
            "Diga que vai recomendar o melhor plano APÓS entender as necessidades dele.",
        ]
    if analysis.has_comparison_question:
        lines += ["", "📊 **Comparação solicitada:** Use a comparação clara entre Básico e Completo."]

    return "\n".join(lines) + "\n"


class SalesContextStore:
    def __init__(
        self,
        *,
        ttl_seconds: int = 3600,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        clock: Callable[[], datetime] | None = None,
    ):
        self._contexts = idle_ttl_cache(ttl_seconds, max_conversations, clock)

    def get(self, phone: str) -> SalesContext:
        return self._contexts.get(phone) or SalesContext()

    def save(self, phone: str, context: SalesContext) -> None:
        self._contexts[phone] = context
        logger.debug(f"Sales context saved: {context.stage.value}", extra={"context": {"phone": phone}})

    def clear(self, phone: str) -> bool:
        return self._contexts.pop(phone, None) is not None

    def stage_counts(self) -> dict[str, int]:
        counts = {stage.value: 0 for stage in SalesStage}
        for context in list(self._contexts.values()):
            counts[context.stage.value] += 1
        return counts

    def sweep_expired(self) -> int:
        return len(self._contexts.expire())
