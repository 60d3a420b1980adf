import re
from collections import Counter
from typing import Callable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from streambot.config import settings
from streambot.database import SessionLocal
from streambot.logging_config import get_logger
from streambot.models.knowledge_entry import KnowledgeEntry
from streambot.services.intent_service import Intent
from streambot.services.normalizer import strip_accents

logger = get_logger("knowledge_service")

MAX_RESULTS = 5
MAX_CONTEXT_LENGTH = 4000
MAX_SEARCH_TERMS = 5
CONTEXT_HEADER = "📚 CONHECIMENTO ESPECÍFICO:\n\n"
CONTEXT_TRAILER = "---\n\n"

INTENT_CATEGORIES = {
    Intent.PROSPECT: "prospeccao",
    Intent.SUPPORT: "suporte",
    Intent.GENERAL: "geral",
}

STOPWORDS = {
    "que",
    "para",
    "com",
    "uma",
    "um",
    "por",
    "mais",
    "como",
    "mas",
    "dos",
    "das",
    "nos",
    "nas",
    "ele",
    "ela",
    "isso",
    "esse",
    "essa",
    "seu",
    "sua",
    "meu",
    "minha",
    "voce",
    "tem",
    "ter",
    "sao",
    "esta",
    "estou",
    "qual",
    "quais",
}

PRODUCT_KNOWLEDGE = """## INFORMAÇÕES DO PRODUTO:

**PRODUTO:** Chat Bot Multi-tarefas
**PREÇO:** R$ 499,00 (de R$ 900,00) - Pagamento único, SEM MENSALIDADES
**PÚBLICO:** Pizzarias, Restaurantes, Hamburguerias, Açaiterias e qualquer delivery

**PAGAMENTO:**
- Pix à vista
- Pix parcelado
- Cartão em até 5x
- Futuramente: pagamento integrado no WhatsApp

**PRINCIPAIS DIFERENCIAIS:**
✅ Cliente faz pedido SOZINHO com ajuda da IA
✅ Valor total calculado automaticamente
✅ Atendente só precisa anotar e produzir
✅ SEM mensalidades ou taxas ocultas
✅ Roda no próprio computador (não precisa VPS)
✅ NÃO precisa saber programar
✅ Configuração em 15 minutos
✅ 30 dias de suporte técnico gratuito

**IA INTEGRADA:**
- GROQ API (GRATUITA e recomendada) ✅
- OpenAI API (paga, opcional)
- Google Gemini (gratuita, limitada)

**FUNCIONALIDADES:**
- Painel administrativo visual
- Cardápio digital editável
- Função Meio a Meio (pizzas)
- Sistema de cupons e cashback
- Taxa de entrega por bairro
- Reconhecimento de endereço
- Checkout de pagamento integrado

**PLANOS:**
- Básico: R$ 299
- Completo: R$ 499

**CONTATOS:**
- WhatsApp: {whatsapp_support}
- Email: stream.produtora@gmail.com
- Fanpage: {fanpage_url}
- Atendente: {owner_name}"""


def product_knowledge() -> str:
    """Static product facts every flow's system prompt starts from."""
    return PRODUCT_KNOWLEDGE.format(
        whatsapp_support=settings.whatsapp_support,
        fanpage_url=settings.fanpage_url,
        owner_name=settings.owner_name,
    )


def extract_search_terms(text: str, limit: int = MAX_SEARCH_TERMS) -> List[str]:
    """Most frequent significant words of the message, accents preserved."""
    words = re.findall(r"\w+", (text or "").lower())
    significant = [word for word in words if len(word) > 2 and strip_accents(word) not in STOPWORDS]
    return [word for word, _ in Counter(significant).most_common(limit)]


def search_knowledge(
    db: Session,
    query: str,
    category: Optional[str] = None,
    limit: int = MAX_RESULTS,
) -> List[KnowledgeEntry]:
    """LIKE-filter active rows on title, content and keywords. Newest first."""
    terms = extract_search_terms(query)
    if not terms:
        return []

    filters = []
    for term in terms:
        pattern = f"%{term}%"
        filters.extend(
            [
                KnowledgeEntry.title.ilike(pattern),
                KnowledgeEntry.content.ilike(pattern),
                KnowledgeEntry.keywords.ilike(pattern),
            ]
        )

    stmt = db.query(KnowledgeEntry).filter(KnowledgeEntry.active.is_(True), or_(*filters))
    if category:
        stmt = stmt.filter(KnowledgeEntry.category == category)
    results = stmt.order_by(KnowledgeEntry.created_at.desc()).limit(limit).all()
    logger.debug(f"Knowledge search: found {len(results)} results for '{query[:30]}'")
    return results


def build_context(entries: List[KnowledgeEntry], max_length: int = MAX_CONTEXT_LENGTH) -> str:
    if not entries:
        return ""

    parts = [CONTEXT_HEADER]
    total = 0
    for entry in entries:
        text = f"### {entry.title}\n{entry.content}\n\n"
        if total + len(text) > max_length:
            logger.debug("Knowledge context limit reached")
            break
        parts.append(text)
        total += len(text)

    parts.append(CONTEXT_TRAILER)
    return "".join(parts)


def get_context_for_message(
    text: str,
    intent: Intent,
    session_factory: Callable[[], Session] = SessionLocal,
) -> str:
    """Retrieved knowledge for a flow prompt. Database errors yield an empty context."""
    db = session_factory()
    try:
        entries = search_knowledge(db, text, INTENT_CATEGORIES.get(intent))
        return build_context(entries)
    except SQLAlchemyError as e:
        logger.warning(f"Knowledge lookup failed: {e}")
        return ""
    finally:
        db.close()


def add_entry(
    db: Session,
    *,
    category: str,
    title: str,
    content: str,
    keywords: str | None = None,
) -> KnowledgeEntry:
    entry = KnowledgeEntry(
        category=category,
        title=title.strip(),
        content=content.strip(),
        keywords=keywords.lower().strip() if keywords else "",
        active=True,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(f"Knowledge entry added: {entry.title}", extra={"context": {"category": category}})
    return entry


def deactivate_entry(db: Session, entry_id: str) -> bool:
    entry = db.query(KnowledgeEntry).filter(KnowledgeEntry.id == entry_id).first()
    if entry is None:
        return False
    entry.active = False
    db.commit()
    return True
