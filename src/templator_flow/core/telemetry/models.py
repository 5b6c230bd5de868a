# src/templator_flow/core/telemetry/models.py
"""
Entidades persistidas do Templator Flow.

Cada entidade é uma dataclass imutável com `TABLE` (tabela lógica no
RecordStore), `to_dict()` e `from_dict()`. Timestamps são strings ISO-8601
em UTC.

Catálogo:
    PipelineDefinition, PipelineVersion, StepDefinition, StepVersion
Telemetria:
    PipelineRun, StepRun, IRArtifact, MetricResult, StepOutputLink
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, TypeVar

from ..pipeline.types import ErrorKind, PipelineDag, PipelineRunStatus, StepRunStatus

R = TypeVar("R", bound="_Record")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class _Record:
    TABLE: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return {k: _plain(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


# ---------------------------------------------------------------------------
# Catálogo
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineDefinition(_Record):
    TABLE: ClassVar[str] = "pipeline_definitions"

    id: str
    name: str
    description: str = ""
    created_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class PipelineVersion(_Record):
    TABLE: ClassVar[str] = "pipeline_versions"

    id: str
    pipeline_id: str
    version: str
    dag: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = False
    created_at: str = field(default_factory=utc_now_iso)

    def parsed_dag(self) -> PipelineDag:
        return PipelineDag.from_dict(self.dag)


@dataclass(frozen=True)
class StepDefinition(_Record):
    TABLE: ClassVar[str] = "step_definitions"

    id: str
    key: str
    name: str = ""
    description: str = ""
    created_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class StepVersion(_Record):
    TABLE: ClassVar[str] = "step_versions"

    id: str
    step_id: str
    version: str
    is_active: bool = True
    default_config: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)


# ---------------------------------------------------------------------------
# Telemetria
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineRun(_Record):
    TABLE: ClassVar[str] = "pipeline_runs"

    id: str
    pipeline_version_id: str
    status: PipelineRunStatus = PipelineRunStatus.INITIALIZING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    summary: Dict[str, Any] = field(default_factory=dict)
    origin: str = "api"
    origin_info: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", PipelineRunStatus(self.status))


@dataclass(frozen=True)
class StepRun(_Record):
    TABLE: ClassVar[str] = "step_runs"

    id: str
    pipeline_run_id: str
    step_version_id: str
    node_key: str
    attempt: int = 1
    status: StepRunStatus = StepRunStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", StepRunStatus(self.status))
        if self.error_kind is not None:
            object.__setattr__(self, "error_kind", ErrorKind(self.error_kind))


@dataclass(frozen=True)
class IRArtifact(_Record):
    TABLE: ClassVar[str] = "ir_artifacts"

    id: str
    step_run_id: str
    ir_json: Dict[str, Any] = field(default_factory=dict)
    is_valid: Optional[bool] = None
    validation_errors: List[Any] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class MetricResult(_Record):
    TABLE: ClassVar[str] = "metric_results"

    id: str
    step_run_id: str
    metric_key: str
    value: Optional[float] = None
    string_value: Optional[str] = None
    passed: Optional[bool] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class StepOutputLink(_Record):
    TABLE: ClassVar[str] = "step_output_links"

    id: str
    step_run_id: str
    target_type: str
    target_id: str
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)
