"""
Tests for recommendation rule evaluation, ordering and template rendering.
"""

import pytest

from listing_audit.models import (
    ComparisonOperator,
    DiagnosticCode,
    FamilyScore,
    FormulaEngineResult,
    KpiEngineResult,
    KpiResult,
    RecommendationRule,
    RecommendationTemplate,
    Severity,
)
from listing_audit.services.formula_engine import FormulaEngine
from listing_audit.services.kpi_engine import KpiEngine
from listing_audit.services.recommendation_engine import RecommendationEngine, metric_value


def kpi_result(overall=80.0, kpis=None, families=None) -> KpiEngineResult:
    return KpiEngineResult(
        kpis={
            kpi_id: KpiResult(
                id=kpi_id,
                family_id="clarity_structure",
                raw_value=value,
                normalized=value,
                base_weight=0.25,
                effective_weight=0.25,
            )
            for kpi_id, value in (kpis or {}).items()
        },
        families={
            family_id: FamilyScore(id=family_id, weight=0.15, score=score)
            for family_id, score in (families or {}).items()
        },
        overall=overall,
    )


def rule(id, severity, metric="overall", threshold=50.0, template_id="overall_low") -> RecommendationRule:
    return RecommendationRule(
        id=id,
        metric=metric,
        operator=ComparisonOperator.LT,
        threshold=threshold,
        severity=severity,
        template_id=template_id,
    )


EMPTY_FORMULAS = FormulaEngineResult()


class TestOrdering:

    def test_severity_then_declaration_order(self, base_rules) -> None:
        engine = RecommendationEngine([
            rule("optional", Severity.OPTIONAL),
            rule("critical_1", Severity.CRITICAL),
            rule("strong", Severity.STRONG),
            rule("moderate", Severity.MODERATE),
            rule("critical_2", Severity.CRITICAL),
        ])
        recommendations, diagnostics = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, base_rules)

        assert [r.rule_id for r in recommendations] == [
            "critical_1", "critical_2", "strong", "moderate", "optional",
        ]
        assert diagnostics == []

    def test_untriggered_rules_are_skipped(self, base_rules) -> None:
        engine = RecommendationEngine([rule("overall", Severity.CRITICAL, threshold=40.0)])
        recommendations, _ = engine.generate(kpi_result(overall=40.0), EMPTY_FORMULAS, base_rules)
        assert recommendations == []

    @pytest.mark.parametrize("operator,value,triggered", [
        (ComparisonOperator.LT, 39.9, True),
        (ComparisonOperator.LTE, 40.0, True),
        (ComparisonOperator.GT, 40.0, False),
        (ComparisonOperator.GTE, 40.0, True),
    ])
    def test_operators(self, operator, value, triggered) -> None:
        assert operator.test(value, 40.0) is triggered


class TestRendering:

    def test_base_wording(self, base_rules) -> None:
        engine = RecommendationEngine([rule("overall_score_low", Severity.CRITICAL, threshold=40.0)])
        recommendations, _ = engine.generate(kpi_result(overall=30.0), EMPTY_FORMULAS, base_rules)

        assert recommendations[0].message == (
            "Overall metadata score is 30 (below 40). Rework the title and subtitle around core "
            "phrases such as 'habit tracker' and 'plan your day'."
        )
        assert recommendations[0].value == 30.0
        assert recommendations[0].threshold == 40.0

    def test_vertical_wording(self, language_rules) -> None:
        engine = RecommendationEngine([
            rule("hooks_missing", Severity.STRONG, metric="family:hook_strength", threshold=40.0, template_id="add_hooks"),
        ])
        recommendations, _ = engine.generate(
            kpi_result(families={"hook_strength": 12.5}), EMPTY_FORMULAS, language_rules
        )

        assert "educational hooks like 'learn spanish' or 'speak fluently'" in recommendations[0].message

    def test_fractional_values_use_two_decimals(self, base_rules) -> None:
        engine = RecommendationEngine([
            rule("title_underused", Severity.MODERATE, metric="kpi:title_char_usage", threshold=60.0,
                 template_id="title_underused"),
        ])
        recommendations, _ = engine.generate(
            kpi_result(kpis={"title_char_usage": 33.333}), EMPTY_FORMULAS, base_rules
        )

        assert "(kpi:title_char_usage scored 33.33)" in recommendations[0].message

    def test_rule_set_variables_override_template_defaults(self, base_rules) -> None:
        rules = base_rules.model_copy(update={"recommendation_templates": {
            "overall_low": RecommendationTemplate(
                id="overall_low",
                text="Try '{example_1}' or '{fallback}'.",
                variables={"example_1": "focus timer", "fallback": "daily planner"},
            ),
        }})
        engine = RecommendationEngine([rule("overall_score_low", Severity.CRITICAL)])
        recommendations, _ = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, rules)

        assert recommendations[0].message == "Try 'habit tracker' or 'daily planner'."

    @pytest.mark.parametrize("text", ["Score {value:>100000000}", "Score {value!r}"])
    def test_format_specs_are_not_rendered(self, base_rules, text) -> None:
        rules = base_rules.model_copy(update={"recommendation_templates": {
            "overall_low": RecommendationTemplate(id="overall_low", text=text),
        }})
        engine = RecommendationEngine([rule("overall_score_low", Severity.CRITICAL)])
        recommendations, diagnostics = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, rules)

        assert recommendations == []
        assert diagnostics[0].code == DiagnosticCode.TEMPLATE_MISSING

    def test_formula_metric(self, base_rules) -> None:
        engine = RecommendationEngine([
            rule("title_element_weak", Severity.STRONG, metric="formula:title_element_score", template_id="improve_title"),
        ])
        formulas = FormulaEngineResult(values={"title_element_score": 42.0})
        recommendations, _ = engine.generate(kpi_result(), formulas, base_rules)

        assert recommendations[0].message.startswith("Title element score is 42.")


class TestMissingTemplates:

    def test_missing_template_is_a_diagnostic(self, base_rules) -> None:
        engine = RecommendationEngine([
            rule("orphan", Severity.CRITICAL, template_id="does_not_exist"),
            rule("overall_score_low", Severity.CRITICAL),
        ])
        recommendations, diagnostics = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, base_rules)

        assert [r.rule_id for r in recommendations] == ["overall_score_low"]
        assert [(d.code, d.component) for d in diagnostics] == [(DiagnosticCode.TEMPLATE_MISSING, "orphan")]

    def test_unrenderable_template_is_a_diagnostic(self, base_rules) -> None:
        rules = base_rules.model_copy(update={"recommendation_templates": {
            "overall_low": RecommendationTemplate(id="overall_low", text="Missing {nowhere}"),
        }})
        engine = RecommendationEngine([rule("overall_score_low", Severity.CRITICAL)])
        recommendations, diagnostics = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, rules)

        assert recommendations == []
        assert diagnostics[0].code == DiagnosticCode.TEMPLATE_MISSING

    def test_unknown_metric_is_skipped(self, base_rules) -> None:
        engine = RecommendationEngine([rule("ghost", Severity.CRITICAL, metric="kpi:not_computed")])
        recommendations, diagnostics = engine.generate(kpi_result(overall=10.0), EMPTY_FORMULAS, base_rules)

        assert recommendations == []
        assert diagnostics == []


class TestMetricValue:

    def test_lookup(self) -> None:
        result = kpi_result(overall=55.0, kpis={"title_char_usage": 60.0}, families={"hook_strength": 20.0})
        formulas = FormulaEngineResult(values={"hook_depth_score": 75.0})

        assert metric_value("overall", result, formulas) == 55.0
        assert metric_value("kpi:title_char_usage", result, formulas) == 60.0
        assert metric_value("family:hook_strength", result, formulas) == 20.0
        assert metric_value("formula:hook_depth_score", result, formulas) == 75.0

    def test_unknown_prefix(self) -> None:
        with pytest.raises(KeyError):
            metric_value("widget:x", kpi_result(), EMPTY_FORMULAS)


class TestDefaultRules:

    def test_every_default_rule_has_a_base_template(self, base_rules) -> None:
        engine = RecommendationEngine()
        assert {r.template_id for r in engine.rules} <= set(base_rules.recommendation_templates)

    def test_empty_listing_gets_critical_first(self, base_rules, empty_listing, make_primitives) -> None:
        primitives = make_primitives(empty_listing, base_rules)
        kpis = KpiEngine().evaluate(primitives, base_rules)
        formulas = FormulaEngine().evaluate(kpis, primitives, base_rules)

        recommendations, diagnostics = RecommendationEngine().generate(kpis, formulas, base_rules)

        assert recommendations[0].rule_id == "overall_score_low"
        assert recommendations[0].severity == Severity.CRITICAL
        assert [r.severity.rank for r in recommendations] == sorted(
            (r.severity.rank for r in recommendations), reverse=True
        )
        assert diagnostics == []
