# src/templator_flow/core/pipeline/types.py
"""
Tipos canônicos do pipeline do Templator Flow.

Este módulo define as estruturas e enums fundamentais que padronizam a
comunicação entre catálogo, scheduler, runner e telemetria.

Componentes principais:
    - PipelineRunStatus / StepRunStatus → estados persistidos
    - ErrorKind                         → causa de falha/skip de uma StepRun
    - DagNode / DagEdge / PipelineDag   → DAG armazenado na PipelineVersion
    - ExecutorResult                    → contrato de saída de executores
    - NodeCompleted / NodeFailed / NodeSkipped → desfechos por nó

Princípios fundamentais:
    - Tipos são estáveis e serializáveis (`to_dict` / `from_dict`)
    - Enums possuem valores textuais canônicos
    - Nenhuma lógica de execução vive neste módulo

Limites explícitos:
    - Não executa Steps
    - Não planeja pipelines
    - Não persiste dados
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class PipelineRunStatus(str, Enum):
    """
    Estados de uma PipelineRun.

    Transições permitidas (apenas para frente):
        initializing → running → {completed, failed, cancelled}
        initializing → {failed, cancelled}
    """

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_RUN


class StepRunStatus(str, Enum):
    """
    Estados de uma StepRun.

    `pending` existe apenas para linhas criadas por workers externos;
    o scheduler cria StepRuns já como `queued` ou `skipped`.
    """

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STEP


_TERMINAL_RUN = frozenset(
    {PipelineRunStatus.COMPLETED, PipelineRunStatus.FAILED, PipelineRunStatus.CANCELLED}
)
_TERMINAL_STEP = frozenset(
    {StepRunStatus.COMPLETED, StepRunStatus.FAILED, StepRunStatus.SKIPPED}
)


class ErrorKind(str, Enum):
    """
    Causa de uma StepRun `failed` ou `skipped`.

        - EXECUTION: o executor levantou exceção (ou violou o contrato)
        - TIMEOUT:   o executor excedeu `timeout_ms`
        - CANCELLED: a run foi cancelada durante a execução
        - REPORTED:  o executor devolveu status `failed` explicitamente
        - ABORTED:   a run falhou antes do nó iniciar
        - UPSTREAM:  uma dependência do nó falhou
    """

    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    REPORTED = "reported"
    ABORTED = "aborted"
    UPSTREAM = "upstream"


# ---------------------------------------------------------------------------
# DAG armazenado
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DagNode:
    """
    Nó do DAG de uma PipelineVersion.

    Campos de política:
        - depends_on: predecessores adicionais às arestas explícitas
        - condition: expressão `path op literal`; ausente ⇒ sempre executa
        - continue_on_fail: falha do nó não derruba a run
        - retries: tentativas extras; `None` usa `engine.default_retries`
        - timeout_ms: orçamento por tentativa; `None` usa o default do engine
        - parallel_group: nós prontos do mesmo grupo executam em paralelo
        - order: ordem de fallback quando não há dependências
    """

    key: str
    step_version_id: str
    params: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    condition: Optional[str] = None
    continue_on_fail: bool = False
    retries: Optional[int] = None
    timeout_ms: Optional[int] = None
    parallel_group: Optional[str] = None
    order: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "step_version_id": self.step_version_id,
            "params": dict(self.params),
            "depends_on": list(self.depends_on),
            "condition": self.condition,
            "continue_on_fail": self.continue_on_fail,
            "retries": self.retries,
            "timeout_ms": self.timeout_ms,
            "parallel_group": self.parallel_group,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DagNode":
        return cls(
            key=data["key"],
            step_version_id=data["step_version_id"],
            params=dict(data.get("params") or {}),
            depends_on=list(data.get("depends_on") or []),
            condition=data.get("condition"),
            continue_on_fail=bool(data.get("continue_on_fail", False)),
            retries=data.get("retries"),
            timeout_ms=data.get("timeout_ms"),
            parallel_group=data.get("parallel_group"),
            order=data.get("order"),
        )


@dataclass(frozen=True)
class DagEdge:
    source: str
    target: str
    kind: str = "next"

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.source, "to": self.target, "kind": self.kind}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DagEdge":
        return cls(
            source=data["from"],
            target=data["to"],
            kind=data.get("kind", "next"),
        )


@dataclass(frozen=True)
class PipelineDag:
    nodes: List[DagNode] = field(default_factory=list)
    edges: List[DagEdge] = field(default_factory=list)

    def node_keys(self) -> List[str]:
        return [n.key for n in self.nodes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineDag":
        data = data or {}
        return cls(
            nodes=[DagNode.from_dict(n) for n in data.get("nodes") or []],
            edges=[DagEdge.from_dict(e) for e in data.get("edges") or []],
        )


# ---------------------------------------------------------------------------
# Contrato de executores
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricInput:
    """Métrica reportada por um executor (numérica, textual ou pass/fail)."""

    metric_key: str
    value: Optional[float] = None
    string_value: Optional[str] = None
    passed: Optional[bool] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutputLinkInput:
    """Referência a um artefato de saída (ex.: template gerado, upload)."""

    target_type: str
    target_id: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutorResult:
    """
    Resultado imutável devolvido por um executor de Step.

    Campos:
        - payload: dado livre devolvido ao chamador de `run_step`
        - ir: representação intermediária; gera exatamente um IRArtifact
        - ir_valid / validation_errors: resultado de validação do IR
        - metrics: lote de métricas (persistidas de forma aditiva)
        - outputs: links para artefatos produzidos
        - status: status final explícito (`completed` ou `failed`; qualquer
          outro valor, inclusive `skipped`, é falha de contrato)
        - error: mensagem obrigatória quando `status == failed`
        - context: valores publicados no RunContext para condições futuras

    Um executor que devolve `status="failed"` não levanta exceção: a falha
    é registrada com `error_kind="reported"`.
    """

    payload: Any = None
    ir: Optional[Dict[str, Any]] = None
    ir_valid: Optional[bool] = None
    validation_errors: List[Any] = field(default_factory=list)
    metrics: List[MetricInput] = field(default_factory=list)
    outputs: List[OutputLinkInput] = field(default_factory=list)
    status: Optional[StepRunStatus] = None
    error: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def reported_failure(self) -> bool:
        return self.status is not None and StepRunStatus(self.status) is StepRunStatus.FAILED


# ---------------------------------------------------------------------------
# Desfechos por nó (união etiquetada)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeCompleted:
    node_key: str
    step_run_id: str
    attempts: int
    result: ExecutorResult
    kind: str = field(default="completed", init=False)


@dataclass(frozen=True)
class NodeFailed:
    node_key: str
    step_run_id: str
    attempts: int
    error: str
    error_kind: ErrorKind
    payload: Dict[str, Any] = field(default_factory=dict)
    kind: str = field(default="failed", init=False)


@dataclass(frozen=True)
class NodeSkipped:
    node_key: str
    step_run_id: Optional[str]
    reason: str
    error_kind: Optional[ErrorKind] = None
    kind: str = field(default="skipped", init=False)


NodeOutcome = Union[NodeCompleted, NodeFailed, NodeSkipped]
