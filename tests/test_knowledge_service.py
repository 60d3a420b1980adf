from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

from sqlalchemy.exc import SQLAlchemyError

from streambot.models.knowledge_entry import KnowledgeEntry
from streambot.services.intent_service import Intent
from streambot.services.knowledge_service import (
    CONTEXT_HEADER,
    CONTEXT_TRAILER,
    add_entry,
    build_context,
    deactivate_entry,
    extract_search_terms,
    get_context_for_message,
    product_knowledge,
    search_knowledge,
)


def _seed(db):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    db.add_all(
        [
            KnowledgeEntry(
                category="suporte",
                title="Cardápio digital",
                content="Edite o cardapio pelo painel administrativo.",
                keywords="cardapio, menu",
                created_at=base,
            ),
            KnowledgeEntry(
                category="suporte",
                title="Cardapio antigo",
                content="Conteudo desativado sobre cardapio.",
                keywords="cardapio",
                active=False,
                created_at=base + timedelta(days=1),
            ),
            KnowledgeEntry(
                category="prospeccao",
                title="Planos",
                content="Temos os planos Basico e Completo.",
                keywords="preco, planos",
                created_at=base + timedelta(days=2),
            ),
            KnowledgeEntry(
                category="suporte",
                title="Cupons",
                content="Cupons tambem aparecem no cardapio.",
                keywords="cupom",
                created_at=base + timedelta(days=3),
            ),
        ]
    )
    db.commit()


class TestExtractSearchTerms:
    def test_drops_stopwords_and_short_words(self):
        terms = extract_search_terms("Como configurar o cardapio do cardapio digital")
        assert terms == ["cardapio", "configurar", "digital"]

    def test_empty(self):
        assert extract_search_terms("") == []
        assert extract_search_terms(None) == []

    def test_limit(self):
        assert len(extract_search_terms("alpha bravo charlie delta echo foxtrot golf")) == 5


class TestSearchKnowledge:
    def test_finds_active_entries_newest_first(self, sqlite_db):
        _seed(sqlite_db)
        results = search_knowledge(sqlite_db, "como edito o cardapio")
        assert [entry.title for entry in results] == ["Cupons", "Cardápio digital"]

    def test_category_filter(self, sqlite_db):
        _seed(sqlite_db)
        assert search_knowledge(sqlite_db, "cardapio", category="prospeccao") == []

    def test_matches_keywords(self, sqlite_db):
        _seed(sqlite_db)
        results = search_knowledge(sqlite_db, "qual o preco", category="prospeccao")
        assert [entry.title for entry in results] == ["Planos"]

    def test_no_terms(self, sqlite_db):
        assert search_knowledge(sqlite_db, "oi") == []


class TestBuildContext:
    def test_empty(self):
        assert build_context([]) == ""

    def test_formats_entries(self):
        entries = [SimpleNamespace(title="Cupons", content="Use o painel.")]
        context = build_context(entries)
        assert context == CONTEXT_HEADER + "### Cupons\nUse o painel.\n\n" + CONTEXT_TRAILER

    def test_respects_max_length(self):
        entries = [
            SimpleNamespace(title="A", content="x" * 50),
            SimpleNamespace(title="B", content="y" * 50),
        ]
        context = build_context(entries, max_length=70)
        assert "### A" in context
        assert "### B" not in context


class TestGetContextForMessage:
    def test_uses_intent_category(self, sqlite_db):
        _seed(sqlite_db)
        context = get_context_for_message("problema no cardapio", Intent.SUPPORT, session_factory=lambda: sqlite_db)
        assert context.startswith(CONTEXT_HEADER)
        assert "Cardápio digital" in context

    def test_database_error_yields_empty_context(self):
        db = Mock()
        db.query.side_effect = SQLAlchemyError("database is down")
        context = get_context_for_message("problema no cardapio", Intent.SUPPORT, session_factory=lambda: db)
        assert context == ""
        db.close.assert_called_once()


class TestEntries:
    def test_add_and_deactivate(self, sqlite_db):
        entry = add_entry(sqlite_db, category="geral", title=" Horário ", content="Seg a sex", keywords=" Horario ")
        assert entry.title == "Horário"
        assert entry.keywords == "horario"
        assert entry.active is True

        assert deactivate_entry(sqlite_db, entry.id) is True
        assert search_knowledge(sqlite_db, "horario") == []

    def test_deactivate_missing(self, sqlite_db):
        assert deactivate_entry(sqlite_db, "missing") is False


class TestProductKnowledge:
    def test_includes_contacts(self):
        text = product_knowledge()
        assert "Chat Bot Multi-tarefas" in text
        assert "{" not in text
