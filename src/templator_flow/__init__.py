# src/templator_flow/__init__.py
"""
Templator Flow — orquestração de pipelines versionados e refinamento
guiado por confiança.

Este pacote raiz define o namespace público do Templator Flow, o núcleo
de execução que agenda DAGs de Steps versionados, registra telemetria
durável de cada execução e conduz o ciclo iterativo
"gerar → validar → decidir" até que a confiança calculada ultrapasse
um limiar ou o orçamento de iterações se esgote.

Arquitetura em alto nível:
    - core.config     → carregamento, merge, hashing e settings tipados
    - core.pipeline   → tipos canônicos, RunContext e registry de executores
    - core.catalog    → registro idempotente de pipelines e Steps
    - core.engine     → planner (DAG), condições, StepRunner e DagScheduler
    - core.telemetry  → record store, recorder e reconstrução de histórico
    - refinement      → loop de refinamento e métricas de confiança
    - phases          → caso linear especial com fallback por fase

Limites explícitos:
    - Não contém lógica de domínio (visão, HTML, empacotamento)
    - Não expõe superfície HTTP ou CLI
    - Não executa em múltiplos nós
"""

__version__ = "0.1.0"

from .core.catalog.catalog import EnsureResult, PipelineCatalog, StepSpec
from .core.engine.runner import RunStepOptions, StepRunner
from .core.engine.scheduler import DagScheduler, PlanResult
from .core.pipeline.context import RunContext
from .core.pipeline.registry import ExecutorRegistry
from .core.pipeline.types import ExecutorResult, MetricInput, OutputLinkInput
from .core.telemetry.recorder import TelemetryRecorder
from .core.telemetry.store import InMemoryRecordStore, JsonDirRecordStore
from .phases.orchestrator import PhaseOrchestrator, PhaseResult
from .refinement.controller import RefinementController

__all__ = [
    "__version__",
    "DagScheduler",
    "EnsureResult",
    "ExecutorRegistry",
    "ExecutorResult",
    "InMemoryRecordStore",
    "JsonDirRecordStore",
    "MetricInput",
    "OutputLinkInput",
    "PhaseOrchestrator",
    "PhaseResult",
    "PipelineCatalog",
    "PlanResult",
    "RefinementController",
    "RunContext",
    "RunStepOptions",
    "StepRunner",
    "StepSpec",
    "TelemetryRecorder",
]
