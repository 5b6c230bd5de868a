# src/templator_flow/phases/orchestrator.py
"""
PhaseOrchestrator: caso linear do modelo de DAG com fallback por fase.

Uma lista ordenada de fases, cada uma com:

    execute(input, context) -> output                  (obrigatório)
    calculate_quality_score(output) -> float           (opcional)
    get_warnings(output) -> List[str]                  (opcional)
    get_metadata(output, context) -> Dict              (opcional)
    create_fallback_result(context) -> output          (opcional)

`execute_phase` cronometra a chamada e devolve sempre um `PhaseResult`:
    - sucesso                          → envelope completo
    - falha + fallback_on_error + hook → sucesso degradado com warning e
                                         `metadata.fallback_used = True`
    - falha sem fallback               → envelope `success=False` (sem exceção)

Decisões arquiteturais:
    - A cadeia é modelada como DAG (`as_dag`): arestas `next` e
      `continue_on_fail=True` em todos os nós
    - `run` percorre a ordem do planner; a saída de uma fase é a entrada da
      seguinte, mesmo quando a fase anterior falhou
    - `as_step_specs` + `as_executors` permitem executar a mesma cadeia pelo
      DagScheduler, com telemetria completa
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.catalog.catalog import StepSpec
from ..core.engine.planner import build_graph, topo_sort
from ..core.pipeline.context import RunContext
from ..core.pipeline.registry import Executor
from ..core.pipeline.types import DagEdge, DagNode, ExecutorResult, MetricInput, PipelineDag

logger = logging.getLogger(__name__)

PHASE_INPUT_ARTIFACT = "phase_input"


def phase_artifact_key(name: str) -> str:
    return f"phase:{name}"


def phase_step_key(name: str) -> str:
    return f"phase.{name}"


@dataclass
class PhaseContext:
    pipeline_id: str
    fallback_on_error: bool = True
    current_phase: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PhaseResult:
    success: bool
    data: Any
    phase: str
    processing_time_ms: float
    quality_score: Optional[float] = None
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def fallback_used(self) -> bool:
        return bool(self.metadata.get("fallback_used"))


@dataclass(frozen=True)
class OrchestrationResult:
    pipeline_id: str
    success: bool
    results: Dict[str, PhaseResult]
    final_data: Any
    processing_time_ms: float
    warnings_count: int
    phase_times: Dict[str, float] = field(default_factory=dict)


class PhaseHandler(ABC):
    """Base opcional para fases; hooks opcionais devolvem `None` por padrão."""

    name: str = ""

    @abstractmethod
    def execute(self, data: Any, context: PhaseContext) -> Any:
        ...

    def calculate_quality_score(self, output: Any) -> Optional[float]:
        return None

    def get_warnings(self, output: Any) -> List[str]:
        return []

    def get_metadata(self, output: Any, context: PhaseContext) -> Dict[str, Any]:
        return {}


def _phase_name(phase: Any) -> str:
    name = getattr(phase, "name", None) or phase.__class__.__name__
    return str(name)


def execute_phase(phase: Any, data: Any, context: PhaseContext) -> PhaseResult:
    """Executa uma fase e devolve o envelope; nunca levanta exceção da fase."""
    name = _phase_name(phase)
    context.current_phase = name
    started = time.perf_counter()
    logger.info("Phase %s started (pipeline=%s)", name, context.pipeline_id)

    try:
        output = phase.execute(data, context)
    except Exception as e:
        elapsed = (time.perf_counter() - started) * 1000.0
        logger.error("Phase %s failed: %s", name, e)
        return _handle_phase_error(phase, name, e, elapsed, context)

    elapsed = (time.perf_counter() - started) * 1000.0
    score_fn = getattr(phase, "calculate_quality_score", None)
    warnings_fn = getattr(phase, "get_warnings", None)
    meta_fn = getattr(phase, "get_metadata", None)
    result = PhaseResult(
        success=True,
        data=output,
        phase=name,
        processing_time_ms=elapsed,
        quality_score=score_fn(output) if score_fn else None,
        warnings=list(warnings_fn(output) or []) if warnings_fn else [],
        metadata=dict(meta_fn(output, context) or {}) if meta_fn else {},
    )
    logger.info("Phase %s completed in %.1f ms", name, elapsed)
    return result


def _handle_phase_error(
    phase: Any, name: str, error: Exception, elapsed: float, context: PhaseContext
) -> PhaseResult:
    fallback = getattr(phase, "create_fallback_result", None)
    if context.fallback_on_error and fallback is not None:
        try:
            data = fallback(context)
        except Exception as fallback_error:
            logger.error("Phase %s fallback also failed: %s", name, fallback_error)
        else:
            logger.warning("Phase %s using fallback result", name)
            return PhaseResult(
                success=True,
                data=data,
                phase=name,
                processing_time_ms=elapsed,
                warnings=[f"{name} failed, using fallback result: {error}"],
                metadata={"fallback_used": True, "original_error": str(error)},
            )

    return PhaseResult(
        success=False,
        data={},
        phase=name,
        processing_time_ms=elapsed,
        metadata={"error": str(error), "error_class": error.__class__.__name__},
    )


class PhaseOrchestrator:
    def __init__(self, phases: Sequence[Any], *, fallback_on_error: bool = True) -> None:
        names = [_phase_name(p) for p in phases]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate phase names: {names}")
        self.phases = list(phases)
        self.fallback_on_error = fallback_on_error
        self._by_name = dict(zip(names, self.phases))

    # ------------------------------------------------------------------
    # Modelo de DAG
    # ------------------------------------------------------------------
    def as_dag(self) -> PipelineDag:
        names = list(self._by_name)
        nodes = [
            DagNode(
                key=name,
                step_version_id=phase_step_key(name),
                continue_on_fail=True,
                order=i,
            )
            for i, name in enumerate(names)
        ]
        edges = [DagEdge(source=a, target=b) for a, b in zip(names, names[1:])]
        return PipelineDag(nodes=nodes, edges=edges)

    def as_step_specs(self, version: str = "1.0.0") -> List[StepSpec]:
        """StepSpecs para `PipelineCatalog.ensure` (cadeia `next`, continue_on_fail)."""
        return [
            StepSpec(
                key=phase_step_key(name),
                version=version,
                name=name,
                node_key=name,
                continue_on_fail=True,
            )
            for name in self._by_name
        ]

    def as_executors(self) -> Dict[str, Executor]:
        """
        Adapta as fases em executores do DagScheduler.

        A entrada da primeira fase vem do artefato `phase_input` do RunContext;
        as demais recebem `data` do envelope da fase anterior. Cada envelope é
        publicado como artefato `phase:<nome>`.
        """
        names = list(self._by_name)
        executors: Dict[str, Executor] = {}
        for i, name in enumerate(names):
            previous = names[i - 1] if i > 0 else None
            executors[phase_step_key(name)] = self._make_executor(name, previous)
        return executors

    def _make_executor(self, name: str, previous: Optional[str]) -> Executor:
        phase = self._by_name[name]
        fallback_on_error = self.fallback_on_error

        def run_phase(params: Dict[str, Any], ctx: RunContext) -> ExecutorResult:
            if previous is None:
                data = ctx.get_artifact(PHASE_INPUT_ARTIFACT)
            else:
                prior = ctx.get_artifact(phase_artifact_key(previous))
                data = prior.data if prior is not None else {}
            pctx = PhaseContext(
                pipeline_id=ctx.run_id,
                fallback_on_error=fallback_on_error,
                metadata=dict(params),
            )
            envelope = execute_phase(phase, data, pctx)
            ctx.set_artifact(phase_artifact_key(name), envelope)
            for w in envelope.warnings:
                ctx.add_warning(step_id=name, message=w)

            metrics = [
                MetricInput("phase_success", passed=envelope.success),
                MetricInput("processing_time_ms", value=envelope.processing_time_ms),
            ]
            if envelope.quality_score is not None:
                metrics.append(MetricInput("quality_score", value=envelope.quality_score))
            return ExecutorResult(
                payload=envelope,
                metrics=metrics,
                context={"success": envelope.success, "fallback_used": envelope.fallback_used},
            )

        return run_phase

    # ------------------------------------------------------------------
    # Execução direta
    # ------------------------------------------------------------------
    def run(self, data: Any, *, pipeline_id: Optional[str] = None) -> OrchestrationResult:
        pipeline_id = pipeline_id or str(uuid.uuid4())
        order = topo_sort(build_graph(self.as_dag()))
        context = PhaseContext(pipeline_id=pipeline_id, fallback_on_error=self.fallback_on_error)

        started = time.perf_counter()
        results: Dict[str, PhaseResult] = {}
        current = data
        for name in order:
            envelope = execute_phase(self._by_name[name], current, context)
            results[name] = envelope
            current = envelope.data

        elapsed = (time.perf_counter() - started) * 1000.0
        success = all(r.success for r in results.values())
        logger.info("Phase chain %s finished (success=%s, %.1f ms)", pipeline_id, success, elapsed)
        return OrchestrationResult(
            pipeline_id=pipeline_id,
            success=success,
            results=results,
            final_data=current,
            processing_time_ms=elapsed,
            warnings_count=sum(len(r.warnings) for r in results.values()),
            phase_times={k: r.processing_time_ms for k, r in results.items()},
        )
