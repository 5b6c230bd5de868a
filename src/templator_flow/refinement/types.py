# src/templator_flow/refinement/types.py
"""
Tipos do loop de refinamento.

Contratos externos:
    - Validator: `validate(artifact) -> ValidationReport`
    - Generator: `generate(instruction) -> artifact`

O controller é genérico no tipo do artefato; nenhuma estrutura aqui
pressupõe HTML, JSON ou qualquer domínio específico.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar

A = TypeVar("A")


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    category: str
    code: str
    message: str

    def __post_init__(self) -> None:
        raw = getattr(self.severity, "value", self.severity)
        object.__setattr__(self, "severity", Severity(str(raw).lower()))
        object.__setattr__(self, "category", str(self.category).upper())


@dataclass(frozen=True)
class ValidationReport:
    """
    Resultado de validação de um artefato.

    `metrics` aceita sub-scores fornecidos pelo validador
    (`accessibility_score`, `performance_score`).
    """

    valid: bool
    score: float = 0.0
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def count(self, severity: Severity) -> int:
        return sum(1 for e in self.errors if e.severity is severity)

    def count_category(self, *categories: str) -> int:
        wanted = {c.upper() for c in categories}
        return sum(1 for e in self.errors if e.category in wanted)


@dataclass(frozen=True)
class ConfidenceMetrics:
    overall: float
    field_accuracy: float
    template_quality: float
    syntax_correctness: float
    accessibility_compliance: float
    performance_optimization: float
    domain_compliance: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "overall": self.overall,
            "field_accuracy": self.field_accuracy,
            "template_quality": self.template_quality,
            "syntax_correctness": self.syntax_correctness,
            "accessibility_compliance": self.accessibility_compliance,
            "performance_optimization": self.performance_optimization,
            "domain_compliance": self.domain_compliance,
        }


@dataclass(frozen=True)
class RefinementConfig:
    max_iterations: int = 3
    confidence_threshold: float = 85
    improvement_threshold: float = 10
    focus_areas: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Any) -> "RefinementConfig":
        """Constrói a partir de `RefinementSettings` (core.config.settings)."""
        return cls(
            max_iterations=settings.max_iterations,
            confidence_threshold=settings.confidence_threshold,
            improvement_threshold=settings.improvement_threshold,
            focus_areas=list(settings.focus_areas),
        )


@dataclass(frozen=True)
class RefinementInstruction:
    """Instrução entregue ao gerador para produzir a próxima versão do artefato."""

    request: Any
    iteration: int
    critical_issues: List[str]
    high_priority_issues: List[str]
    suggestions: List[str]
    previous_attempts: List[str]
    focus_areas: List[str]
    prompt: str


@dataclass(frozen=True)
class RefinementIteration(Generic[A]):
    iteration: int
    artifact: A
    validation: ValidationReport
    confidence: ConfidenceMetrics
    improvements: List[str]
    instruction: Optional[RefinementInstruction] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class RefinementResult(Generic[A]):
    final_artifact: A
    final_validation: ValidationReport
    final_confidence: ConfidenceMetrics
    iterations: List[RefinementIteration[A]]
    total_iterations: int
    improvement_achieved: bool
    processing_time_ms: float


@dataclass(frozen=True)
class EffectivenessReport:
    effectiveness: float
    insights: List[str]
    recommendations: List[str]


class Validator(Protocol[A]):
    def validate(self, artifact: A) -> ValidationReport:
        ...


class Generator(Protocol[A]):
    def generate(self, instruction: RefinementInstruction) -> A:
        ...
