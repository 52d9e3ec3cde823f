"""
Recommendation Engine Service

Scans KPI and formula outputs against a static catalogue of recommendation
rules and emits rendered, severity-ranked recommendations.

Each rule is a (condition, severity, template id) triple. The template text and
its example phrases come from the MergedRuleSet, so vertical layers control the
wording without any vertical knowledge in this module.

Ordering: severity rank descending (critical 90, strong 70, moderate 40,
optional 20), then rule declaration order.
"""

import logging
import string
from typing import Dict, List, Optional, Sequence, Tuple

from listing_audit.models.enums import ComparisonOperator, DiagnosticCode, Severity
from listing_audit.models.rules import MergedRuleSet
from listing_audit.models.schemas import (
    Diagnostic,
    FormulaEngineResult,
    KpiEngineResult,
    Recommendation,
    RecommendationRule,
)


logger = logging.getLogger(__name__)


def _rule(id, metric, operator, threshold, severity, template_id) -> RecommendationRule:
    return RecommendationRule(
        id=id,
        metric=metric,
        operator=operator,
        threshold=threshold,
        severity=severity,
        template_id=template_id,
    )


LT = ComparisonOperator.LT

DEFAULT_RECOMMENDATION_RULES: List[RecommendationRule] = [
    _rule("overall_score_low", "overall", LT, 40, Severity.CRITICAL, "overall_low"),
    _rule("title_element_weak", "formula:title_element_score", LT, 50, Severity.STRONG, "improve_title"),
    _rule("title_keywords_missing", "kpi:title_high_value_keyword_count", LT, 50, Severity.STRONG, "add_title_keywords"),
    _rule("hooks_missing", "family:hook_strength", LT, 40, Severity.STRONG, "add_hooks"),
    _rule("title_underused", "kpi:title_char_usage", LT, 60, Severity.MODERATE, "title_underused"),
    _rule("subtitle_underused", "kpi:subtitle_char_usage", LT, 60, Severity.MODERATE, "subtitle_underused"),
    _rule("subtitle_not_incremental", "kpi:subtitle_incremental_keywords", LT, 50, Severity.MODERATE, "subtitle_incremental"),
    _rule("title_noise_high", "kpi:title_noise_ratio", LT, 50, Severity.MODERATE, "reduce_title_noise"),
    _rule("intent_unclear", "kpi:unclassified_combo_ratio", LT, 40, Severity.MODERATE, "clarify_intent"),
    _rule("overbranded", "kpi:overbranding_indicator", LT, 50, Severity.OPTIONAL, "reduce_branding"),
    _rule("description_length", "kpi:description_word_count", LT, 50, Severity.OPTIONAL, "expand_description"),
]


def metric_value(metric: str, kpi_result: KpiEngineResult, formula_result: FormulaEngineResult) -> float:
    """
    Look up a rule metric.

    Raises:
        KeyError: unknown metric reference
    """
    if metric == "overall":
        return kpi_result.overall
    prefix, _, name = metric.partition(":")
    if prefix == "kpi":
        return kpi_result.kpis[name].normalized
    if prefix == "family":
        return kpi_result.families[name].score
    if prefix == "formula":
        return formula_result.values[name]
    raise KeyError(metric)


def _format_number(value: float) -> str:
    return f"{value:g}" if float(value).is_integer() else f"{value:.2f}"


def render_template(text: str, variables: Dict[str, str]) -> str:
    """
    Substitute plain `{name}` placeholders.

    Raises:
        KeyError: a placeholder has no variable
        ValueError: malformed braces, or a placeholder with a format spec or conversion
    """
    parts = []
    for literal, field_name, format_spec, conversion in string.Formatter().parse(text):
        parts.append(literal)
        if field_name is None:
            continue
        if not field_name.isidentifier() or format_spec or conversion:
            raise ValueError(f"unsupported placeholder '{{{field_name}}}'")
        parts.append(str(variables[field_name]))
    return "".join(parts)


class RecommendationEngine:
    """Evaluates recommendation rules in declaration order."""

    def __init__(self, rules: Optional[Sequence[RecommendationRule]] = None):
        self.rules: List[RecommendationRule] = list(rules if rules is not None else DEFAULT_RECOMMENDATION_RULES)

    def generate(
        self,
        kpi_result: KpiEngineResult,
        formula_result: FormulaEngineResult,
        rule_set: MergedRuleSet,
    ) -> Tuple[List[Recommendation], List[Diagnostic]]:
        """
        Evaluate every rule and render the triggered ones.

        Returns:
            (recommendations sorted by severity then declaration order, diagnostics)
        """
        triggered: List[Tuple[int, int, Recommendation]] = []
        diagnostics: List[Diagnostic] = []

        for index, rule in enumerate(self.rules):
            try:
                value = metric_value(rule.metric, kpi_result, formula_result)
            except KeyError:
                logger.warning(f"Recommendation rule {rule.id} references unknown metric {rule.metric}")
                continue
            if not rule.operator.test(value, rule.threshold):
                continue

            template = rule_set.recommendation_templates.get(rule.template_id)
            if template is None:
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.TEMPLATE_MISSING,
                    component=rule.id,
                    message=f"Template {rule.template_id} not defined in rule set {rule_set.version}",
                ))
                continue

            # Template defaults, then rule-set variables, then engine values
            variables = {
                **template.variables,
                **rule_set.template_variables,
                "metric": rule.metric,
                "value": _format_number(value),
                "threshold": _format_number(rule.threshold),
            }
            try:
                message = render_template(template.text, variables)
            except (KeyError, ValueError, IndexError) as e:
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.TEMPLATE_MISSING,
                    component=rule.id,
                    message=f"Template {rule.template_id} could not be rendered: {e}",
                ))
                continue

            triggered.append((
                -rule.severity.rank,
                index,
                Recommendation(
                    rule_id=rule.id,
                    template_id=rule.template_id,
                    severity=rule.severity,
                    metric=rule.metric,
                    value=value,
                    threshold=rule.threshold,
                    message=message,
                ),
            ))

        triggered.sort(key=lambda item: (item[0], item[1]))
        return [item[2] for item in triggered], diagnostics
