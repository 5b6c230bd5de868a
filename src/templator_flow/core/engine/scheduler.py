# src/templator_flow/core/engine/scheduler.py
"""
DagScheduler: planejamento e execução de uma PipelineVersion.

Fluxo de `plan_and_execute`:

    1. resolve a PipelineVersion e constrói o grafo (build_graph/topo_sort)
    2. verifica StepVersions e executores (PlanningError antes de qualquer escrita)
    3. abre a PipelineRun (initializing → running)
    4. percorre os nós em ondas: um nó fica pronto quando todas as suas
       dependências estão terminais
    5. para cada nó pronto:
         - dependência falhou           → skipped (error_kind=upstream)
         - condição falsa               → skipped
         - caso contrário               → StepRun queued → StepRunner
    6. finaliza a run (completed | failed | cancelled)

Decisões arquiteturais:
    - Nós prontos que compartilham `parallel_group` executam em paralelo
      (ThreadPoolExecutor limitado por `engine.max_workers`)
    - Condições e dobras no RunContext acontecem apenas na thread do scheduler
    - Retries criam novas StepRuns (`attempt` 2..n+1); a tentativa falha
      anterior nunca é reescrita
    - Falha em nó com `continue_on_fail=False` encerra a run como `failed`;
      nós não iniciados são gravados `skipped` (error_kind=aborted)
    - `cancel` é cooperativo: o scheduler para de lançar nós e grava os
      restantes como `skipped` (error_kind=cancelled)

Limites explícitos:
    - Não persiste nada diretamente (apenas via TelemetryRecorder)
    - Não conhece o domínio dos executores
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.hashing import compute_config_hash
from ..config.settings import EngineSettings
from ..errors import reported_failure_payload, to_error_payload
from ..exceptions import InvalidTransitionError, StepCancelledError
from ..pipeline.context import RunContext
from ..pipeline.registry import ExecutorRegistry
from ..pipeline.types import (
    ErrorKind,
    NodeCompleted,
    NodeFailed,
    NodeOutcome,
    NodeSkipped,
    PipelineRunStatus,
    StepRunStatus,
)
from ..telemetry.models import PipelineRun
from ..telemetry.recorder import TelemetryRecorder
from .conditions import evaluate_condition
from .planner import DagGraph, build_graph, topo_sort
from .runner import StepRunner

SCHEDULER_STEP_ID = "scheduler"

_CANCELLABLE = (StepRunStatus.PENDING, StepRunStatus.QUEUED, StepRunStatus.RUNNING)


@dataclass(frozen=True)
class PlanResult:
    """
    Resultado de `plan_and_execute`.

    - pipeline_run_id: `None` em dry-run
    - plan: ordem topológica das chaves de nó
    - status: status final da run (`running` em modo rascunho)
    - outcomes: desfecho por nó (NodeCompleted | NodeFailed | NodeSkipped)
    - queued: StepRuns deixadas em `queued` no modo rascunho
    """

    pipeline_run_id: Optional[str]
    plan: List[str]
    status: Optional[PipelineRunStatus] = None
    outcomes: Dict[str, NodeOutcome] = field(default_factory=dict)
    queued: Dict[str, str] = field(default_factory=dict)
    context: Optional[RunContext] = field(default=None, compare=False, repr=False)


def summarize_outcome(outcome: NodeOutcome) -> Dict[str, Any]:
    if isinstance(outcome, NodeCompleted):
        return {
            "status": "completed",
            "step_run_id": outcome.step_run_id,
            "attempts": outcome.attempts,
        }
    if isinstance(outcome, NodeFailed):
        return {
            "status": "failed",
            "step_run_id": outcome.step_run_id,
            "attempts": outcome.attempts,
            "error": outcome.error,
            "error_kind": outcome.error_kind.value,
        }
    if isinstance(outcome, NodeSkipped):
        return {
            "status": "skipped",
            "step_run_id": outcome.step_run_id,
            "reason": outcome.reason,
            "error_kind": outcome.error_kind.value if outcome.error_kind else None,
        }
    raise TypeError(f"Desfecho de nó desconhecido: {type(outcome).__name__}")


def _metric_values(outcome: NodeCompleted) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for m in outcome.result.metrics:
        if m.value is not None:
            values[m.metric_key] = m.value
        elif m.string_value is not None:
            values[m.metric_key] = m.string_value
        else:
            values[m.metric_key] = m.passed
    return values


class DagScheduler:
    """
    Planeja e executa PipelineVersions.

    Colaboradores são injetados na construção; o scheduler mantém apenas o
    mapa de eventos de cancelamento das runs em andamento.
    """

    def __init__(
        self,
        catalog: Any,
        recorder: TelemetryRecorder,
        executors: ExecutorRegistry,
        *,
        runner: Optional[StepRunner] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.catalog = catalog
        self.recorder = recorder
        self.executors = executors
        self.runner = runner or StepRunner(recorder)
        self.settings = settings or EngineSettings()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------
    def plan_and_execute(
        self,
        pipeline_version_id: str,
        origin: str = "api",
        *,
        dry_run: bool = False,
        execute: bool = True,
        origin_info: Optional[Dict[str, Any]] = None,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> PlanResult:
        """
        Planeja e (opcionalmente) executa uma PipelineVersion.

        Args:
            pipeline_version_id: Versão a executar.
            origin: Origem da run (api, seed, worker...).
            dry_run: Apenas devolve a ordem; nenhuma linha é gravada.
            execute: `False` cria a run em modo rascunho (StepRuns `queued`
                para um worker externo).
            origin_info: Metadados livres da origem.
            inputs: Artefatos iniciais publicados no RunContext antes do
                primeiro nó (ex.: `phase_input`).

        Raises:
            PlanningError: DAG inválido, StepVersion ou executor ausentes.
            TelemetryWriteError: Falha do RecordStore.
        """
        version = self.catalog.get_version(pipeline_version_id)
        graph = build_graph(version.dag)
        order = topo_sort(graph)

        step_keys = {k: self.catalog.step_key_for(graph.nodes[k].step_version_id) for k in order}
        if execute and not dry_run:
            for key in order:
                self.executors.get(step_keys[key])

        if dry_run:
            return PlanResult(pipeline_run_id=None, plan=order)

        run = self.recorder.start_pipeline_run(
            pipeline_version_id,
            origin=origin,
            origin_info=origin_info,
            summary={
                "plan": order,
                "config_hash": compute_config_hash(dict(version.config or {})),
                "mode": "execute" if execute else "draft",
            },
        )
        ctx = RunContext(
            run_id=run.id,
            config=dict(version.config or {}),
            meta={"pipeline_version_id": pipeline_version_id, "origin": origin},
        )
        for name, value in (inputs or {}).items():
            ctx.set_artifact(name, value)
        ctx.log(step_id=SCHEDULER_STEP_ID, level="info", message="plan ready", plan=order)

        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[run.id] = cancel_event
        try:
            self.recorder.mark_pipeline_running(run.id)
            if not execute:
                return self._draft(run, graph, order, ctx)
            return self._execute(run, graph, order, step_keys, ctx, cancel_event)
        finally:
            with self._lock:
                self._cancel_events.pop(run.id, None)

    def cancel(self, pipeline_run_id: str, reason: str = "cancelled") -> PipelineRun:
        """
        Cancela uma run: run → `cancelled`, StepRuns não terminais → `failed`.

        StepRuns terminais não são tocadas. Se a run estiver executando neste
        scheduler, nenhum novo nó é lançado.

        Raises:
            InvalidTransitionError: A run já está em estado terminal.
        """
        with self._lock:
            event = self._cancel_events.get(pipeline_run_id)
        if event is not None:
            event.set()

        run = self.recorder.cancel_pipeline_run(pipeline_run_id, reason=reason)
        message = f"Run cancelada: {reason}"
        for step_run in self.recorder.list_step_runs(pipeline_run_id):
            if step_run.status not in _CANCELLABLE:
                continue
            try:
                self.recorder.fail_step(step_run.id, message, error_kind=ErrorKind.CANCELLED)
            except InvalidTransitionError:
                # finalizada pelo runner entre a listagem e a escrita
                continue
        return run

    # ------------------------------------------------------------------
    # Modo rascunho
    # ------------------------------------------------------------------
    def _draft(
        self, run: PipelineRun, graph: DagGraph, order: List[str], ctx: RunContext
    ) -> PlanResult:
        outcomes: Dict[str, NodeOutcome] = {}
        queued: Dict[str, str] = {}
        for key in order:
            node = graph.nodes[key]
            if evaluate_condition(node.condition, {}, policy=self.settings.condition_policy):
                sr = self.recorder.queue_step_run(
                    run.id, node.step_version_id, key, params=node.params
                )
                queued[key] = sr.id
            else:
                reason = f"condition false: {node.condition}"
                sr = self.recorder.skip_step_run(
                    run.id, node.step_version_id, key, reason=reason, params=node.params
                )
                outcomes[key] = NodeSkipped(node_key=key, step_run_id=sr.id, reason=reason)
        ctx.log(step_id=SCHEDULER_STEP_ID, level="info", message="draft created", queued=list(queued))
        return PlanResult(
            pipeline_run_id=run.id,
            plan=order,
            status=PipelineRunStatus.RUNNING,
            outcomes=outcomes,
            queued=queued,
            context=ctx,
        )

    # ------------------------------------------------------------------
    # Execução completa
    # ------------------------------------------------------------------
    def _execute(
        self,
        run: PipelineRun,
        graph: DagGraph,
        order: List[str],
        step_keys: Dict[str, str],
        ctx: RunContext,
        cancel_event: threading.Event,
    ) -> PlanResult:
        pending = list(order)
        outcomes: Dict[str, NodeOutcome] = {}
        failed_node: Optional[str] = None

        while pending and failed_node is None and not cancel_event.is_set():
            ready = [k for k in pending if all(p in outcomes for p in graph.predecessors[k])]
            first = graph.nodes[ready[0]]
            if first.parallel_group:
                batch = [k for k in ready if graph.nodes[k].parallel_group == first.parallel_group]
            else:
                batch = [first.key]
            for key in batch:
                pending.remove(key)

            to_run: List[str] = []
            for key in batch:
                skipped = self._pre_check(run, graph, key, outcomes, ctx)
                if skipped is None:
                    to_run.append(key)
                else:
                    outcomes[key] = skipped
                    self._fold(ctx, skipped)

            results = self._run_batch(run, graph, to_run, step_keys, ctx, cancel_event)
            for key in to_run:
                outcome = results[key]
                outcomes[key] = outcome
                self._fold(ctx, outcome)
                if (
                    isinstance(outcome, NodeFailed)
                    and outcome.error_kind is not ErrorKind.CANCELLED
                    and not graph.nodes[key].continue_on_fail
                    and failed_node is None
                ):
                    failed_node = key
                    ctx.log(
                        step_id=key,
                        level="error",
                        message="node failed; aborting run",
                        error=outcome.error,
                    )

        if cancel_event.is_set():
            self._skip_remaining(run, graph, pending, outcomes, ctx, ErrorKind.CANCELLED, "run cancelled")
            return self._result(run.id, order, PipelineRunStatus.CANCELLED, outcomes, ctx)

        if failed_node is not None:
            self._skip_remaining(
                run, graph, pending, outcomes, ctx, ErrorKind.ABORTED, f"run aborted after '{failed_node}' failed"
            )
            status = PipelineRunStatus.FAILED
        else:
            status = PipelineRunStatus.COMPLETED

        summary = self._summary(run, order, outcomes, ctx, failed_node)
        try:
            self.recorder.complete_pipeline_run(run.id, status=status, summary=summary)
        except InvalidTransitionError:
            if not cancel_event.is_set():
                raise
            status = PipelineRunStatus.CANCELLED
        ctx.log(step_id=SCHEDULER_STEP_ID, level="info", message="run finished", status=status.value)
        return self._result(run.id, order, status, outcomes, ctx)

    def _pre_check(
        self,
        run: PipelineRun,
        graph: DagGraph,
        key: str,
        outcomes: Dict[str, NodeOutcome],
        ctx: RunContext,
    ) -> Optional[NodeSkipped]:
        node = graph.nodes[key]
        failed_deps = [
            p
            for p in graph.predecessors[key]
            if isinstance(outcomes[p], NodeFailed)
            or (isinstance(outcomes[p], NodeSkipped) and outcomes[p].error_kind is ErrorKind.UPSTREAM)
        ]
        if failed_deps:
            reason = f"upstream failed: {', '.join(failed_deps)}"
            sr = self.recorder.skip_step_run(
                run.id, node.step_version_id, key,
                reason=reason, error_kind=ErrorKind.UPSTREAM, params=node.params,
            )
            ctx.log(step_id=key, level="warning", message="skipped", reason=reason)
            return NodeSkipped(key, sr.id, reason, ErrorKind.UPSTREAM)

        if not evaluate_condition(node.condition, ctx, policy=self.settings.condition_policy):
            reason = f"condition false: {node.condition}"
            sr = self.recorder.skip_step_run(
                run.id, node.step_version_id, key, reason=reason, params=node.params
            )
            ctx.log(step_id=key, level="info", message="skipped", reason=reason)
            return NodeSkipped(key, sr.id, reason)
        return None

    def _run_batch(
        self,
        run: PipelineRun,
        graph: DagGraph,
        keys: List[str],
        step_keys: Dict[str, str],
        ctx: RunContext,
        cancel_event: threading.Event,
    ) -> Dict[str, NodeOutcome]:
        if len(keys) <= 1:
            return {k: self._run_node(run, graph, k, step_keys[k], ctx, cancel_event) for k in keys}

        results: Dict[str, NodeOutcome] = {}
        workers = min(self.settings.max_workers, len(keys))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dag") as pool:
            futures = {
                pool.submit(self._run_node, run, graph, k, step_keys[k], ctx, cancel_event): k
                for k in keys
            }
            for fut in as_completed(futures):
                results[futures[fut]] = fut.result()
        return results

    def _run_node(
        self,
        run: PipelineRun,
        graph: DagGraph,
        key: str,
        step_key: str,
        ctx: RunContext,
        cancel_event: threading.Event,
    ) -> NodeOutcome:
        node = graph.nodes[key]
        executor = self.executors.get(step_key)
        retries = node.retries if node.retries is not None else self.settings.default_retries
        timeout_ms = node.timeout_ms if node.timeout_ms is not None else self.settings.default_timeout_ms

        attempt = 1
        while True:
            step_run = self.recorder.queue_step_run(
                run.id, node.step_version_id, key, params=node.params, attempt=attempt
            )
            ctx.log(step_id=key, level="info", message="attempt started", attempt=attempt)

            try:
                outcome = self.runner.execute_attempt(
                    step_run,
                    executor,
                    params=node.params,
                    ctx=ctx,
                    timeout_ms=timeout_ms,
                    cancel_event=cancel_event,
                )
            except InvalidTransitionError:
                # a varredura de `cancel` finalizou a StepRun antes de `running`
                if not cancel_event.is_set():
                    raise
                exc = StepCancelledError("run cancelled", details={"step_run_id": step_run.id})
                return NodeFailed(
                    key, step_run.id, attempt, str(exc), ErrorKind.CANCELLED,
                    payload=to_error_payload(exc, node_key=key).to_dict(),
                )

            if outcome.succeeded:
                ctx.log(step_id=key, level="info", message="completed", attempt=attempt)
                return NodeCompleted(key, step_run.id, attempt, outcome.result)

            if outcome.exception is not None:
                payload = to_error_payload(outcome.exception, node_key=key).to_dict()
            else:
                payload = reported_failure_payload(outcome.error or "", node_key=key).to_dict()

            if outcome.error_kind is ErrorKind.CANCELLED or attempt > retries:
                ctx.log(
                    step_id=key,
                    level="error",
                    message="failed",
                    attempt=attempt,
                    error=outcome.error,
                    error_kind=outcome.error_kind.value,
                )
                return NodeFailed(key, step_run.id, attempt, outcome.error, outcome.error_kind, payload)

            ctx.log(
                step_id=key,
                level="warning",
                message="retrying",
                attempt=attempt,
                error=outcome.error,
            )
            attempt += 1

    # ------------------------------------------------------------------
    # Finalização
    # ------------------------------------------------------------------
    def _skip_remaining(
        self,
        run: PipelineRun,
        graph: DagGraph,
        pending: List[str],
        outcomes: Dict[str, NodeOutcome],
        ctx: RunContext,
        kind: ErrorKind,
        reason: str,
    ) -> None:
        for key in pending:
            node = graph.nodes[key]
            sr = self.recorder.skip_step_run(
                run.id, node.step_version_id, key, reason=reason, error_kind=kind, params=node.params
            )
            outcomes[key] = NodeSkipped(key, sr.id, reason, kind)
            ctx.log(step_id=key, level="warning", message="skipped", reason=reason)
        pending.clear()

    @staticmethod
    def _fold(ctx: RunContext, outcome: NodeOutcome) -> None:
        entry: Dict[str, Any] = {}
        if isinstance(outcome, NodeCompleted):
            entry.update(outcome.result.context)
            entry["metrics"] = _metric_values(outcome)
        entry.update(summarize_outcome(outcome))
        ctx.fold(outcome.node_key, entry)

    @staticmethod
    def _summary(
        run: PipelineRun,
        order: List[str],
        outcomes: Dict[str, NodeOutcome],
        ctx: RunContext,
        failed_node: Optional[str],
    ) -> Dict[str, Any]:
        nodes = {k: summarize_outcome(outcomes[k]) for k in order if k in outcomes}
        counts = {"completed": 0, "failed": 0, "skipped": 0}
        for entry in nodes.values():
            counts[entry["status"]] += 1

        summary = dict(run.summary)
        summary.update(
            {
                "counts": counts,
                "nodes": nodes,
                "events": len(ctx.events),
                "warnings": sum(len(v) for v in ctx.warnings.values()),
            }
        )
        if failed_node is not None:
            failed = outcomes[failed_node]
            if isinstance(failed, NodeFailed):
                summary["error"] = failed.payload
            summary["failed_node"] = failed_node
        return summary

    @staticmethod
    def _result(
        run_id: str,
        order: List[str],
        status: PipelineRunStatus,
        outcomes: Dict[str, NodeOutcome],
        ctx: RunContext,
    ) -> PlanResult:
        return PlanResult(
            pipeline_run_id=run_id,
            plan=order,
            status=status,
            outcomes={k: outcomes[k] for k in order if k in outcomes},
            context=ctx,
        )
