# src/templator_flow/core/telemetry/__init__.py
"""
Telemetria durável do Templator Flow.

    - store    → RecordStore (memória ou diretório JSON)
    - models   → entidades persistidas
    - recorder → escrita do ciclo de vida (append-only, transições monotônicas)
    - history  → reconstrução e progresso de runs a partir das linhas gravadas
"""

from .models import (
    IRArtifact,
    MetricResult,
    PipelineDefinition,
    PipelineRun,
    PipelineVersion,
    StepDefinition,
    StepOutputLink,
    StepRun,
    StepVersion,
)
from .recorder import TelemetryRecorder
from .store import InMemoryRecordStore, JsonDirRecordStore, RecordStore, build_store

__all__ = [
    "IRArtifact",
    "InMemoryRecordStore",
    "JsonDirRecordStore",
    "MetricResult",
    "PipelineDefinition",
    "PipelineRun",
    "PipelineVersion",
    "RecordStore",
    "StepDefinition",
    "StepOutputLink",
    "StepRun",
    "StepVersion",
    "TelemetryRecorder",
    "build_store",
]
