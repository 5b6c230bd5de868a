# src/templator_flow/phases/__init__.py
"""Cadeia linear de fases com fallback (caso especial do DAG)."""

from .orchestrator import (
    OrchestrationResult,
    PhaseContext,
    PhaseHandler,
    PhaseOrchestrator,
    PhaseResult,
    execute_phase,
)

__all__ = [
    "OrchestrationResult",
    "PhaseContext",
    "PhaseHandler",
    "PhaseOrchestrator",
    "PhaseResult",
    "execute_phase",
]
