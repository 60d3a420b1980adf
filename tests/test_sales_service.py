from streambot.services.sales_service import (
    PLAN_BASIC,
    PLAN_COMPLETE,
    SalesContext,
    SalesContextStore,
    SalesStage,
    advance,
    analyze_message,
    detect_recommended_plan,
    stage_instructions,
)

from .conftest import FakeClock


def _step(context, message, first=False):
    return advance(context, message, analyze_message(message), first)


class TestDetectPlan:
    def test_complete_signals(self):
        assert detect_recommended_plan("Tenho uma pizzaria com entrega em vários bairros") == PLAN_COMPLETE

    def test_basic_signals(self):
        assert detect_recommended_plan("Estou começando, algo simples") == PLAN_BASIC

    def test_no_signal(self):
        assert detect_recommended_plan("vendo lanches") is None


class TestAnalyzeMessage:
    def test_price_question(self):
        analysis = analyze_message("Quanto custa?")
        assert analysis.has_question is True
        assert analysis.has_price_question is True

    def test_objection(self):
        assert analyze_message("achei caro").has_objection is True

    def test_interest_and_plan(self):
        analysis = analyze_message("gostei do completo")
        assert analysis.shows_interest is True
        assert analysis.mentions_plan is True


class TestAdvance:
    def test_full_funnel(self):
        context = _step(SalesContext(), "oi", first=True)
        assert context.stage == SalesStage.DISCOVERY

        _step(context, "vendo lanches")
        assert context.questions_asked == 1

        _step(context, "tenho uma pizzaria")
        assert context.stage == SalesStage.RECOMMENDATION
        assert context.recommended_plan == PLAN_COMPLETE

        _step(context, "achei caro")
        assert context.stage == SalesStage.OBJECTION
        assert context.objections == ["achei caro"]

        _step(context, "gostei, vou querer")
        assert context.stage == SalesStage.CLOSING

    def test_interest_during_discovery_does_not_close(self):
        context = _step(SalesContext(), "quero saber mais")
        assert context.stage == SalesStage.DISCOVERY


class TestStageInstructions:
    def test_discovery_start(self):
        context = SalesContext()
        text = stage_instructions(context, analyze_message("oi"), "Maria")
        assert "DESCOBERTA (0/3" in text
        assert "Cumprimente Maria" in text

    def test_price_alert_during_discovery(self):
        context = SalesContext(questions_asked=1)
        text = stage_instructions(context, analyze_message("qual o preço?"), "Maria")
        assert "perguntou sobre preço" in text

    def test_recommendation(self):
        context = SalesContext(stage=SalesStage.RECOMMENDATION, recommended_plan=PLAN_BASIC)
        text = stage_instructions(context, analyze_message("ok"), "Maria")
        assert f"recomende o plano {PLAN_BASIC}" in text


class TestSalesContextStore:
    def test_default_context(self):
        store = SalesContextStore(clock=FakeClock())
        assert store.get("5511988887777").stage == SalesStage.DISCOVERY

    def test_save_and_expire(self):
        clock = FakeClock()
        store = SalesContextStore(ttl_seconds=60, clock=clock)
        store.save("5511988887777", SalesContext(stage=SalesStage.CLOSING))
        assert store.stage_counts()["closing"] == 1

        clock.advance(seconds=61)
        assert store.sweep_expired() == 1
        assert store.get("5511988887777").stage == SalesStage.DISCOVERY
