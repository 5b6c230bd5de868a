# src/templator_flow/core/engine/runner.py
"""
StepRunner: execução de um único Step com telemetria.

O StepRunner encapsula uma tentativa de execução de um executor:

    1. marca a StepRun como `running`
    2. chama `executor(params, ctx)` (em thread dedicada quando há timeout)
    3. grava IR, métricas e links devolvidos
    4. finaliza a StepRun como `completed` ou `failed`

Dois pontos de entrada:
    - `run_step`       → execução avulsa: abre PipelineRun + StepRun próprias,
                         finaliza ambas e devolve o payload (ou re-levanta)
    - `execute_attempt`→ usado pelo DagScheduler sobre uma StepRun já criada

Decisões arquiteturais:
    - Retries pertencem ao scheduler; o runner executa exatamente uma tentativa
    - Timeout é aplicado via `Future.result(timeout=...)`; a thread do executor
      não é interrompida, mas seu resultado é descartado
    - Um executor que devolve algo diferente de ExecutorResult, ou um
      ExecutorResult malformado, é uma falha de contrato
      (ExecutorContractError), verificada antes de qualquer escrita
    - Cancelamento é verificado antes de gravar a conclusão

Limites explícitos:
    - Não avalia condições
    - Não decide política de `continue_on_fail`
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..errors import error_message, to_error_payload
from ..exceptions import (
    ExecutorContractError,
    InvalidTransitionError,
    StepCancelledError,
    StepTimeoutError,
)
from ..pipeline.context import RunContext
from ..pipeline.registry import Executor
from ..pipeline.types import (
    ErrorKind,
    ExecutorResult,
    MetricInput,
    OutputLinkInput,
    PipelineRunStatus,
    StepRunStatus,
)
from ..telemetry.models import StepRun
from ..telemetry.recorder import TelemetryRecorder

StartHook = Callable[[str, str], None]
CompleteHook = Callable[[str, str, StepRunStatus], None]

_FINAL_STATUSES = (StepRunStatus.COMPLETED, StepRunStatus.FAILED)


@dataclass(frozen=True)
class RunStepOptions:
    """Parâmetros de uma execução avulsa (`run_step`)."""

    pipeline_version_id: str
    step_version_id: str
    node_key: str
    params: Dict[str, Any] = field(default_factory=dict)
    origin: str = "api"
    origin_info: Dict[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[int] = None
    context: Optional[RunContext] = None


@dataclass(frozen=True)
class StepRunResult:
    run_id: str
    step_run_id: str
    result: Any


@dataclass(frozen=True)
class AttemptOutcome:
    """Desfecho de uma tentativa sobre uma StepRun."""

    step_run: StepRun
    result: Optional[ExecutorResult] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    exception: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None


def _check_result(result: ExecutorResult, node_key: str) -> Optional[ExecutorContractError]:
    """Valida os campos de um ExecutorResult; devolve o erro de contrato, se houver."""
    problem: Optional[str] = None
    details: Dict[str, Any] = {"node_key": node_key}

    if result.status is not None:
        try:
            status = StepRunStatus(result.status)
        except (TypeError, ValueError):
            status = None
        if status not in _FINAL_STATUSES:
            problem = f"status inválido: {result.status!r}"
            details["status"] = str(result.status)

    if problem is None and not isinstance(result.metrics, (list, tuple)):
        problem = "metrics deve ser uma lista de MetricInput"
    if problem is None:
        bad = [type(m).__name__ for m in result.metrics if not isinstance(m, MetricInput)]
        if bad:
            problem = "metrics deve conter apenas MetricInput"
            details["invalid_types"] = bad

    if problem is None and not isinstance(result.outputs, (list, tuple)):
        problem = "outputs deve ser uma lista de OutputLinkInput"
    if problem is None:
        bad = [type(o).__name__ for o in result.outputs if not isinstance(o, OutputLinkInput)]
        if bad:
            problem = "outputs deve conter apenas OutputLinkInput"
            details["invalid_types"] = bad

    if problem is None and not isinstance(result.context, dict):
        problem = "context deve ser um dict"

    if problem is None:
        return None
    return ExecutorContractError(
        f"ExecutorResult malformado em '{node_key}': {problem}",
        details=details,
        hint="status aceita apenas `completed` ou `failed`; use MetricInput/OutputLinkInput",
    )


class StepRunner:
    def __init__(
        self,
        recorder: TelemetryRecorder,
        *,
        on_start: Optional[StartHook] = None,
        on_complete: Optional[CompleteHook] = None,
    ) -> None:
        self.recorder = recorder
        self.on_start = on_start
        self.on_complete = on_complete

    # ------------------------------------------------------------------
    # Execução avulsa
    # ------------------------------------------------------------------
    def run_step(self, opts: RunStepOptions, executor: Executor) -> StepRunResult:
        """
        Executa um Step fora de um DAG, com PipelineRun e StepRun próprias.

        Não é idempotente: cada chamada cria uma nova identidade de run.

        Raises:
            A exceção do executor (ou StepTimeoutError/ExecutorContractError),
            após gravar StepRun e PipelineRun como `failed`.
        """
        run = self.recorder.start_pipeline_run(
            opts.pipeline_version_id,
            origin=opts.origin,
            origin_info=opts.origin_info,
            summary={"mode": "single_step", "node_key": opts.node_key},
        )
        self.recorder.mark_pipeline_running(run.id)
        step_run = self.recorder.start_step_run(
            run.id, opts.step_version_id, opts.node_key, params=opts.params
        )
        ctx = opts.context or RunContext(run_id=run.id)

        outcome = self.execute_attempt(
            step_run,
            executor,
            params=opts.params,
            ctx=ctx,
            timeout_ms=opts.timeout_ms,
        )

        if outcome.exception is not None:
            payload = to_error_payload(outcome.exception, node_key=opts.node_key)
            self.recorder.complete_pipeline_run(
                run.id,
                status=PipelineRunStatus.FAILED,
                summary={
                    "mode": "single_step",
                    "node_key": opts.node_key,
                    "error": payload.to_dict(),
                },
            )
            raise outcome.exception

        summary: Dict[str, Any] = {
            "mode": "single_step",
            "node_key": opts.node_key,
            "step_status": outcome.step_run.status.value,
        }
        if outcome.error is not None:
            summary["step_error"] = outcome.error
        self.recorder.complete_pipeline_run(
            run.id, status=PipelineRunStatus.COMPLETED, summary=summary
        )
        return StepRunResult(
            run_id=run.id,
            step_run_id=step_run.id,
            result=outcome.result.payload if outcome.result is not None else None,
        )

    # ------------------------------------------------------------------
    # Tentativa sobre StepRun existente
    # ------------------------------------------------------------------
    def execute_attempt(
        self,
        step_run: StepRun,
        executor: Executor,
        *,
        params: Dict[str, Any],
        ctx: RunContext,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AttemptOutcome:
        if step_run.status is not StepRunStatus.RUNNING:
            step_run = self.recorder.mark_step_running(step_run.id)
        if self.on_start is not None:
            self.on_start(step_run.pipeline_run_id, step_run.id)

        try:
            result = self._invoke(executor, params, ctx, timeout_ms, step_run.node_key)
        except StepTimeoutError as e:
            return self._fail(step_run, e, ErrorKind.TIMEOUT, cancel_event)
        except Exception as e:
            return self._fail(step_run, e, ErrorKind.EXECUTION, cancel_event)

        if not isinstance(result, ExecutorResult):
            err = ExecutorContractError(
                f"Executor de '{step_run.node_key}' devolveu {type(result).__name__}; "
                "esperado ExecutorResult",
                details={"node_key": step_run.node_key, "returned": type(result).__name__},
                hint="Executores devem devolver templator_flow.ExecutorResult",
            )
            return self._fail(step_run, err, ErrorKind.EXECUTION, cancel_event)

        err = _check_result(result, step_run.node_key)
        if err is not None:
            return self._fail(step_run, err, ErrorKind.EXECUTION, cancel_event)

        if cancel_event is not None and cancel_event.is_set():
            return self._cancelled(step_run)

        try:
            if result.ir is not None:
                self.recorder.record_ir(
                    step_run.id,
                    result.ir,
                    is_valid=result.ir_valid,
                    validation_errors=result.validation_errors,
                )
            if result.metrics:
                self.recorder.record_metrics(step_run.id, result.metrics)
            for link in result.outputs:
                self.recorder.link_output(step_run.id, link.target_type, link.target_id, link.meta)

            if result.reported_failure:
                message = (result.error or "").strip() or "Executor reported failure"
                final = self.recorder.fail_step(step_run.id, message, error_kind=ErrorKind.REPORTED)
                outcome = AttemptOutcome(
                    step_run=final, result=result, error=message, error_kind=ErrorKind.REPORTED
                )
            else:
                final = self.recorder.complete_step_run(step_run.id)
                outcome = AttemptOutcome(step_run=final, result=result)
        except InvalidTransitionError:
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(step_run)
            raise

        self._notify_complete(final)
        return outcome

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------
    def _invoke(
        self,
        executor: Executor,
        params: Dict[str, Any],
        ctx: RunContext,
        timeout_ms: Optional[int],
        node_key: str,
    ) -> Any:
        if timeout_ms is None:
            return executor(dict(params), ctx)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{node_key}")
        try:
            fut = pool.submit(executor, dict(params), ctx)
            try:
                return fut.result(timeout=timeout_ms / 1000.0)
            except FuturesTimeoutError:
                fut.cancel()
                raise StepTimeoutError(
                    f"Step '{node_key}' excedeu o timeout de {timeout_ms} ms",
                    details={"node_key": node_key, "timeout_ms": timeout_ms},
                    hint="Aumente `timeout_ms` do nó ou otimize o executor",
                ) from None
        finally:
            pool.shutdown(wait=False)

    def _fail(
        self,
        step_run: StepRun,
        exc: BaseException,
        kind: ErrorKind,
        cancel_event: Optional[threading.Event],
    ) -> AttemptOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return self._cancelled(step_run)
        message = error_message(exc)
        try:
            final = self.recorder.fail_step(step_run.id, message, error_kind=kind)
        except InvalidTransitionError:
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(step_run)
            raise
        self._notify_complete(final)
        return AttemptOutcome(
            step_run=final, error=message, error_kind=kind, exception=exc
        )

    def _cancelled(self, step_run: StepRun) -> AttemptOutcome:
        exc = StepCancelledError(
            f"Run cancelada durante a execução de '{step_run.node_key}'",
            details={"node_key": step_run.node_key, "step_run_id": step_run.id},
        )
        try:
            current = self.recorder.fail_step(
                step_run.id, error_message(exc), error_kind=ErrorKind.CANCELLED
            )
        except InvalidTransitionError:
            # a varredura de `cancel` já finalizou a linha
            current = self.recorder.get_step_run(step_run.id)
        self._notify_complete(current)
        return AttemptOutcome(
            step_run=current,
            error=current.error or error_message(exc),
            error_kind=ErrorKind.CANCELLED,
            exception=exc,
        )

    def _notify_complete(self, step_run: StepRun) -> None:
        if self.on_complete is not None:
            self.on_complete(step_run.pipeline_run_id, step_run.id, step_run.status)
