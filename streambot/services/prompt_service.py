"""Conversation flows and the canned messages the bot sends without the LLM.

Each flow turns the customer's name, the bounded history and the latest
message into the ``[system, *history, user]`` list the LLM receives.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from streambot.config import settings
from streambot.services.intent_service import Intent
from streambot.services.knowledge_service import product_knowledge
from streambot.services.sales_service import MessageAnalysis, SalesContext, stage_instructions

LEAD_WELCOME = """Olá {name}! 👋

Sou o *{bot_name}* e darei inicio ao seu atendimento ok! 🤖

Pode me perguntar à vontade sobre:
- O *Chat Bot Multi-tarefas* (temos 2 planos!)
- Desenvolvimento de sites, aplicativos
- Design, criação de logomarca
- Suporte técnico
- E muito mais!

Como posso ajudar você? 😊"""

RETURNING_WELCOME = """Olá *{name}*! 👋

Que bom te ver por aqui!

Como posso ajudar hoje? É sobre algum projeto em andamento, ou alguma conversa já iniciada?

✅ *Se sim*, basta aguardar que o *{owner}* logo irá te atender.

❓ *Se não for*, me conte, como posso ajudar?"""

FANPAGE_MESSAGE = """📱 *Acesse nossa fanpage para conhecer todos os detalhes:*
{fanpage_url}

Lá você encontra:
✅ Demonstração completa do bot
✅ Fluxo real de conversação
✅ Todas as funcionalidades
✅ Formulário para solicitar o bot

Ou fale direto com o {owner}: {support}"""

LEAD_FALLBACK = (
    "Desculpe {name}, estou com dificuldades técnicas no momento. 😅\n\n"
    "Mas não se preocupe! O {owner} pode te atender direto pelo WhatsApp: {support}"
)
CLIENT_FALLBACK = (
    "Desculpe {name}, estou com dificuldades técnicas no momento. 😅\n\n"
    "Por favor, aguarde. O {owner} logo irá te atender!"
)

ERROR_FALLBACKS = {
    "auth": "Desculpe, há um problema com a configuração da IA. Entre em contato com o suporte técnico.",
    "rate_limit": (
        "Desculpe, estou processando muitas mensagens no momento. "
        "Por favor, aguarde alguns segundos e tente novamente."
    ),
    "timeout": (
        "Desculpe, a resposta está demorando mais que o esperado. "
        "Por favor, tente novamente em alguns instantes."
    ),
    "server_error": (
        "Desculpe, estou com dificuldades técnicas no momento. "
        "Por favor, entre em contato com {owner} para atendimento."
    ),
    "unknown": (
        "Desculpe, estou com dificuldades técnicas no momento. "
        "Por favor, entre em contato com {owner} para atendimento."
    ),
}


def lead_welcome(name: str) -> str:
    return LEAD_WELCOME.format(name=name, bot_name=settings.bot_name)


def greeting_message(name: str) -> str:
    """First-contact greeting: the same introduction leads receive."""
    return lead_welcome(name)


def returning_welcome(name: str) -> str:
    return RETURNING_WELCOME.format(name=name, owner=settings.owner_name)


def fanpage_message() -> str:
    return FANPAGE_MESSAGE.format(
        fanpage_url=settings.fanpage_url,
        owner=settings.owner_name,
        support=settings.whatsapp_support,
    )


def fallback_message(name: str, is_lead: bool) -> str:
    template = LEAD_FALLBACK if is_lead else CLIENT_FALLBACK
    return template.format(name=name, owner=settings.owner_name, support=settings.whatsapp_support)


def error_fallback(kind: str) -> str:
    template = ERROR_FALLBACKS.get(kind, ERROR_FALLBACKS["unknown"])
    return template.format(owner=settings.owner_name)


@dataclass
class PromptContext:
    customer_name: str
    message: str
    history: List[dict] = field(default_factory=list)
    knowledge: str = ""
    sales: Optional[SalesContext] = None
    analysis: Optional[MessageAnalysis] = None

    @property
    def is_first_message(self) -> bool:
        return len(self.history) == 0


class PromptFlow(ABC):
    intent: Intent

    @abstractmethod
    def build_system_prompt(self, ctx: PromptContext) -> str:
        """System prompt for this flow, built from the conversation context."""
        pass

    def build_messages(self, ctx: PromptContext) -> List[dict]:
        messages = [{"role": "system", "content": self.build_system_prompt(ctx)}]
        messages.extend({"role": entry["role"], "content": entry["content"]} for entry in ctx.history)
        messages.append({"role": "user", "content": ctx.message})
        return messages


def _framing(ctx: PromptContext) -> str:
    if ctx.is_first_message:
        return "- Cumprimente o cliente"
    return "- Continue a conversa naturalmente\n- NÃO cumprimente novamente se já cumprimentou"


class ProspectFlow(PromptFlow):
    intent = Intent.PROSPECT

    def build_system_prompt(self, ctx: PromptContext) -> str:
        parts = [
            "Você é o Assistente Virtual da Stream Studio, especializado em tirar dúvidas sobre o "
            "Chat Bot Multi-tarefas para delivery.",
            "",
            "## SEU PAPEL:",
            "- Você é um consultor comercial amigável e profissional",
            "- Seu objetivo é tirar dúvidas e convencer o cliente a acessar a fanpage",
            "- Seja objetivo, claro e entusiasta",
            "",
            product_knowledge(),
            "",
            "## INSTRUÇÕES DE ATENDIMENTO:",
            "- Nunca invente informações, use apenas o conhecimento fornecido",
            f"- Se não souber responder, indique falar direto com o {settings.owner_name} "
            f"pelo WhatsApp: {settings.whatsapp_support}",
            _framing(ctx),
        ]
        if ctx.knowledge:
            parts += ["", ctx.knowledge.rstrip()]
        if ctx.customer_name:
            parts += [
                "",
                f"**IMPORTANTE:** O nome do cliente é {ctx.customer_name}. "
                "Use o nome dele naturalmente na conversa para criar rapport.",
            ]

        prompt = "\n".join(parts)
        if ctx.sales is not None and ctx.analysis is not None:
            prompt += stage_instructions(ctx.sales, ctx.analysis, ctx.customer_name)

        details = [
            "",
            "## 📋 INFORMAÇÕES ADICIONAIS DO CLIENTE:",
            "",
            f"**Nome:** {ctx.customer_name}",
            f"**Histórico:** {len(ctx.history)} mensagens anteriores",
        ]
        if ctx.sales is not None:
            details.append(f"**Estágio da venda:** {ctx.sales.stage.value}")
            if ctx.sales.recommended_plan:
                details.append(f"**Plano recomendado:** {ctx.sales.recommended_plan}")
        details += [
            "",
            "---",
            "",
            "**Lembre-se:**",
            "- Use o histórico para criar continuidade",
            "- Não repita informações já ditas",
            "- Máximo 10 linhas por resposta",
            "- Use 2-4 emojis moderadamente",
        ]
        return prompt + "\n".join(details)


class SupportFlow(PromptFlow):
    intent = Intent.SUPPORT

    def build_system_prompt(self, ctx: PromptContext) -> str:
        owner = settings.owner_name
        parts = [
            "Você é o especialista em suporte técnico da Stream Studio, focado em ajudar clientes "
            "a instalar, configurar e usar o Chat Bot Multi-tarefas.",
            "",
            "MISSÃO: Resolver problemas e guiar configurações passo a passo.",
            "",
            product_knowledge(),
            "",
            "**IMPORTANTE:**",
            "- Dê instruções numeradas e curtas (máximo 8 linhas)",
            "- Pergunte qual mensagem de erro aparece quando faltar informação",
            f"- Se o problema exigir acesso ao sistema do cliente, encaminhe para o {owner}: "
            f"{settings.whatsapp_support}",
            f"- O cliente se chama {ctx.customer_name}",
            _framing(ctx),
        ]
        if ctx.knowledge:
            parts += ["", ctx.knowledge.rstrip()]
        return "\n".join(parts)


class GeneralFlow(PromptFlow):
    intent = Intent.GENERAL

    def build_system_prompt(self, ctx: PromptContext) -> str:
        owner = settings.owner_name
        parts = [
            "Você é o Assistente Virtual da Stream Studio.",
            "",
            f"O cliente {ctx.customer_name} já é um cliente conhecido e pode ter projetos em andamento "
            f"com o {owner}.",
            "",
            "Sua função é:",
            "1. Ser cordial e receptivo",
            "2. Perguntar se ele tem algum projeto em andamento ou dúvida sobre algo já contratado",
            f"3. Se sim, informar que o {owner} logo irá atendê-lo",
            "4. Se não, perguntar como pode ajudar",
            "5. Responder dúvidas gerais sobre a empresa",
            f"6. Para questões técnicas ou comerciais complexas, sempre encaminhe para o {owner}",
            "",
            "**IMPORTANTE:**",
            "- Seja breve e objetivo (máximo 5 linhas)",
            "- Não faça promessas sobre projetos ou prazos",
            "- Use um tom amigável mas profissional",
            _framing(ctx),
            "",
            "**CONTATO:**",
            f"WhatsApp do {owner}: {settings.whatsapp_support}",
            "",
            "**USO DO HISTÓRICO:**",
            "- SEMPRE leia TODO o histórico antes de responder",
            "- Não repita informações já fornecidas",
            "- Faça referência ao que já foi discutido",
        ]
        if ctx.knowledge:
            parts += ["", ctx.knowledge.rstrip()]
        return "\n".join(parts)


FLOWS = {
    Intent.PROSPECT: ProspectFlow(),
    Intent.SUPPORT: SupportFlow(),
    Intent.GENERAL: GeneralFlow(),
}


def get_flow(intent: Intent) -> PromptFlow:
    return FLOWS.get(intent, FLOWS[Intent.GENERAL])
