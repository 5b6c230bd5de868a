# src/templator_flow/refinement/confidence.py
"""
Cálculo de confiança, lista de melhorias e análise de efetividade.

Fórmulas (todas com piso em 0):

    overall                  = 100 − (30·critical + 20·high + 10·medium + 5·warnings)
    field_accuracy           = 100 − 15·erros FIELD
    template_quality         = 100 − 10·(erros TEMPLATE + SYNTAX)
    syntax_correctness       = 100 − 20·erros SYNTAX
    accessibility_compliance = metrics.accessibility_score (default 0)
    performance_optimization = metrics.performance_score (default 0)

Valores não numéricos em `metrics` contam como 0.
    domain_compliance        = 100 − (25·critical + 15·high)
"""

from __future__ import annotations

from typing import Any, List

from .types import (
    ConfidenceMetrics,
    EffectivenessReport,
    RefinementResult,
    Severity,
    ValidationReport,
)


def _floor(value: float) -> float:
    return max(0.0, float(value))


def _metric(report: ValidationReport, key: str) -> float:
    value: Any = (report.metrics or {}).get(key)
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return _floor(value)
    except (TypeError, ValueError):
        return 0.0


def compute_confidence(report: ValidationReport) -> ConfidenceMetrics:
    critical = report.count(Severity.CRITICAL)
    high = report.count(Severity.HIGH)
    medium = report.count(Severity.MEDIUM)
    warnings = len(report.warnings)

    return ConfidenceMetrics(
        overall=_floor(100 - (30 * critical + 20 * high + 10 * medium + 5 * warnings)),
        field_accuracy=_floor(100 - 15 * report.count_category("FIELD")),
        template_quality=_floor(100 - 10 * report.count_category("TEMPLATE", "SYNTAX")),
        syntax_correctness=_floor(100 - 20 * report.count_category("SYNTAX")),
        accessibility_compliance=_metric(report, "accessibility_score"),
        performance_optimization=_metric(report, "performance_score"),
        domain_compliance=_floor(100 - (25 * critical + 15 * high)),
    )


def improvements_for(report: ValidationReport, confidence: ConfidenceMetrics) -> List[str]:
    """Itens de melhoria para a próxima iteração, em ordem de prioridade."""
    items: List[str] = []

    critical = report.count(Severity.CRITICAL)
    if critical:
        items.append(f"Fix {critical} critical validation errors")
    high = report.count(Severity.HIGH)
    if high:
        items.append(f"Resolve {high} high-priority issues")

    if confidence.field_accuracy < 80:
        items.append("Improve field definitions and validation")
    if confidence.template_quality < 80:
        items.append("Enhance template structure and syntax")
    if confidence.accessibility_compliance < 80:
        items.append("Add accessibility attributes and ARIA labels")
    if confidence.performance_optimization < 80:
        items.append("Optimize for performance and loading speed")
    if confidence.domain_compliance < 90:
        items.append("Ensure full compliance with the target platform")
    return items


def analyze_effectiveness(result: RefinementResult) -> EffectivenessReport:
    """
    Avalia quanto o refinamento melhorou a confiança.

    effectiveness = min(100, max(0, 2 · (final.overall − primeira.overall)))
    """
    initial = result.iterations[0].confidence.overall if result.iterations else 0.0
    final = result.final_confidence
    improvement = final.overall - initial
    effectiveness = min(100.0, max(0.0, improvement * 2))

    insights: List[str] = []
    recommendations: List[str] = []

    if improvement > 20:
        insights.append("Significant improvement achieved through refinement")
    elif improvement > 10:
        insights.append("Moderate improvement achieved")
    elif improvement > 0:
        insights.append("Minor improvement achieved")
    else:
        insights.append("No measurable improvement from refinement")

    if result.iterations:
        per_iteration = improvement / len(result.iterations)
        if per_iteration > 10:
            insights.append("High efficiency per refinement iteration")
        elif per_iteration > 5:
            insights.append("Moderate efficiency per iteration")
        else:
            insights.append("Low efficiency per iteration")
            recommendations.append("Consider improving refinement instructions")

    if final.overall >= 90:
        insights.append("Excellent final quality achieved")
    elif final.overall >= 80:
        insights.append("Good final quality achieved")
    elif final.overall >= 70:
        insights.append("Acceptable final quality achieved")
        recommendations.append("Consider additional refinement iterations")
    else:
        insights.append("Final quality below expectations")
        recommendations.append("Review generation instructions and validation criteria")

    if final.accessibility_compliance < 80:
        recommendations.append("Focus on accessibility improvements in future refinements")
    if final.performance_optimization < 80:
        recommendations.append("Emphasize performance optimization in refinement instructions")

    return EffectivenessReport(
        effectiveness=effectiveness,
        insights=insights,
        recommendations=recommendations,
    )
