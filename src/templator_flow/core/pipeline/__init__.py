# src/templator_flow/core/pipeline/__init__.py
"""
Pipeline Core — Templator Flow

Este pacote define os contratos canônicos compartilhados por catálogo,
scheduler, runner e telemetria:

    - types    → enums de status, DAG armazenado, ExecutorResult e desfechos
    - context  → RunContext (valores para condições, artefatos, logs)
    - registry → ExecutorRegistry (chave de Step → executor)

Nenhum módulo deste pacote executa Steps ou escreve telemetria.
"""

from .context import RunContext
from .registry import DuplicateExecutorError, Executor, ExecutorRegistry
from .types import (
    DagEdge,
    DagNode,
    ErrorKind,
    ExecutorResult,
    MetricInput,
    NodeCompleted,
    NodeFailed,
    NodeOutcome,
    NodeSkipped,
    OutputLinkInput,
    PipelineDag,
    PipelineRunStatus,
    StepRunStatus,
)

__all__ = [
    "DagEdge",
    "DagNode",
    "DuplicateExecutorError",
    "ErrorKind",
    "Executor",
    "ExecutorRegistry",
    "ExecutorResult",
    "MetricInput",
    "NodeCompleted",
    "NodeFailed",
    "NodeOutcome",
    "NodeSkipped",
    "OutputLinkInput",
    "PipelineDag",
    "PipelineRunStatus",
    "RunContext",
    "StepRunStatus",
]
