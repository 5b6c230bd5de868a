# src/templator_flow/refinement/__init__.py
"""
Refinamento guiado por confiança.

    - types      → contratos (ValidationReport, RefinementInstruction, ...)
    - confidence → ConfidenceMetrics, lista de melhorias, efetividade
    - controller → RefinementController (loop limitado)
"""

from .confidence import analyze_effectiveness, compute_confidence, improvements_for
from .controller import RefinementController, render_prompt
from .types import (
    ConfidenceMetrics,
    EffectivenessReport,
    RefinementConfig,
    RefinementInstruction,
    RefinementIteration,
    RefinementResult,
    Severity,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    "ConfidenceMetrics",
    "EffectivenessReport",
    "RefinementConfig",
    "RefinementController",
    "RefinementInstruction",
    "RefinementIteration",
    "RefinementResult",
    "Severity",
    "ValidationIssue",
    "ValidationReport",
    "analyze_effectiveness",
    "compute_confidence",
    "improvements_for",
    "render_prompt",
]
