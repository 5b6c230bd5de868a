# src/templator_flow/core/telemetry/recorder.py
"""
TelemetryRecorder: escrita durável do ciclo de vida de runs e Steps.

O recorder é a única porta de escrita de telemetria. Ele não contém
lógica de negócio: recebe ids e valores e grava linhas no RecordStore,
garantindo apenas as regras de integridade do modelo de dados.

Ordem de escrita por StepRun:
    start (queued|running) → IR / métricas / links → complete | fail

Invariantes:
    - Status de PipelineRun e StepRun só avançam; linhas terminais nunca
      são reescritas (InvalidTransitionError)
    - MetricResult é apenas anexado; `record_metrics` é aditivo
    - `fail_step` sempre grava `failed` com `error` não vazio
    - Qualquer falha do store é propagada como TelemetryWriteError

Limites explícitos:
    - Não decide retries, timeouts ou condições
    - Não executa Steps
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from ..exceptions import InvalidTransitionError, TelemetryWriteError
from ..pipeline.types import (
    ErrorKind,
    MetricInput,
    PipelineRunStatus,
    StepRunStatus,
)
from .models import (
    IRArtifact,
    MetricResult,
    PipelineRun,
    StepOutputLink,
    StepRun,
    utc_now_iso,
)
from .store import RecordStore

T = TypeVar("T")

_RUN_TRANSITIONS = {
    PipelineRunStatus.INITIALIZING: {
        PipelineRunStatus.RUNNING,
        PipelineRunStatus.FAILED,
        PipelineRunStatus.CANCELLED,
    },
    PipelineRunStatus.RUNNING: {
        PipelineRunStatus.COMPLETED,
        PipelineRunStatus.FAILED,
        PipelineRunStatus.CANCELLED,
    },
}

_STEP_TRANSITIONS = {
    StepRunStatus.PENDING: {StepRunStatus.QUEUED, StepRunStatus.RUNNING, StepRunStatus.FAILED, StepRunStatus.SKIPPED},
    StepRunStatus.QUEUED: {StepRunStatus.RUNNING, StepRunStatus.FAILED, StepRunStatus.SKIPPED},
    StepRunStatus.RUNNING: {StepRunStatus.COMPLETED, StepRunStatus.FAILED},
}


class TelemetryRecorder:
    """
    Grava PipelineRuns, StepRuns, IRArtifacts, MetricResults e StepOutputLinks.

    Thread-safe: verificações de transição e escritas acontecem sob o mesmo
    lock, de modo que um `cancel` concorrente e a finalização de um Step
    nunca reescrevem a mesma linha duas vezes.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Infra
    # ------------------------------------------------------------------
    def _write(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except TelemetryWriteError:
            raise
        except Exception as e:
            raise TelemetryWriteError(
                f"Falha ao gravar telemetria ({op}): {e}",
                details={"operation": op, "exception_class": e.__class__.__name__},
                hint="Verifique o RecordStore configurado em telemetry.store",
            ) from e

    def get_pipeline_run(self, run_id: str) -> PipelineRun:
        return PipelineRun.from_dict(
            self._write("get_pipeline_run", lambda: self.store.get(PipelineRun.TABLE, run_id))
        )

    def get_step_run(self, step_run_id: str) -> StepRun:
        return StepRun.from_dict(
            self._write("get_step_run", lambda: self.store.get(StepRun.TABLE, step_run_id))
        )

    def list_step_runs(self, run_id: str) -> List[StepRun]:
        rows = self._write(
            "list_step_runs", lambda: self.store.find(StepRun.TABLE, pipeline_run_id=run_id)
        )
        return [StepRun.from_dict(r) for r in rows]

    def _transition_run(
        self, run_id: str, target: PipelineRunStatus, changes: Dict[str, Any]
    ) -> PipelineRun:
        with self._lock:
            current = self.get_pipeline_run(run_id)
            if target not in _RUN_TRANSITIONS.get(current.status, set()):
                raise InvalidTransitionError(
                    f"PipelineRun {run_id}: transição {current.status.value} → {target.value} proibida",
                    details={"run_id": run_id, "from": current.status.value, "to": target.value},
                )
            row = dict(changes, status=target.value)
            return PipelineRun.from_dict(
                self._write("update_pipeline_run", lambda: self.store.update(PipelineRun.TABLE, run_id, row))
            )

    def _transition_step(
        self, step_run_id: str, target: StepRunStatus, changes: Dict[str, Any]
    ) -> StepRun:
        with self._lock:
            current = self.get_step_run(step_run_id)
            if target not in _STEP_TRANSITIONS.get(current.status, set()):
                raise InvalidTransitionError(
                    f"StepRun {step_run_id}: transição {current.status.value} → {target.value} proibida",
                    details={
                        "step_run_id": step_run_id,
                        "node_key": current.node_key,
                        "from": current.status.value,
                        "to": target.value,
                    },
                )
            row = dict(changes, status=target.value)
            return StepRun.from_dict(
                self._write("update_step_run", lambda: self.store.update(StepRun.TABLE, step_run_id, row))
            )

    # ------------------------------------------------------------------
    # PipelineRun
    # ------------------------------------------------------------------
    def start_pipeline_run(
        self,
        pipeline_version_id: str,
        *,
        origin: str = "api",
        origin_info: Optional[Dict[str, Any]] = None,
        summary: Optional[Dict[str, Any]] = None,
    ) -> PipelineRun:
        row = {
            "pipeline_version_id": pipeline_version_id,
            "status": PipelineRunStatus.INITIALIZING.value,
            "started_at": utc_now_iso(),
            "completed_at": None,
            "summary": dict(summary or {}),
            "origin": origin,
            "origin_info": dict(origin_info or {}),
        }
        return PipelineRun.from_dict(
            self._write("start_pipeline_run", lambda: self.store.create(PipelineRun.TABLE, row))
        )

    def mark_pipeline_running(self, run_id: str) -> PipelineRun:
        return self._transition_run(run_id, PipelineRunStatus.RUNNING, {})

    def complete_pipeline_run(
        self,
        run_id: str,
        *,
        status: PipelineRunStatus = PipelineRunStatus.COMPLETED,
        summary: Optional[Dict[str, Any]] = None,
    ) -> PipelineRun:
        status = PipelineRunStatus(status)
        if status not in (PipelineRunStatus.COMPLETED, PipelineRunStatus.FAILED):
            raise InvalidTransitionError(
                f"complete_pipeline_run aceita apenas completed/failed, recebido: {status.value}",
                details={"run_id": run_id, "to": status.value},
            )
        changes: Dict[str, Any] = {"completed_at": utc_now_iso()}
        if summary is not None:
            changes["summary"] = summary
        return self._transition_run(run_id, status, changes)

    def cancel_pipeline_run(self, run_id: str, *, reason: str = "cancelled") -> PipelineRun:
        with self._lock:
            summary = dict(self.get_pipeline_run(run_id).summary)
            summary["cancel_reason"] = reason
            return self._transition_run(
                run_id,
                PipelineRunStatus.CANCELLED,
                {"completed_at": utc_now_iso(), "summary": summary},
            )

    # ------------------------------------------------------------------
    # StepRun
    # ------------------------------------------------------------------
    def _create_step_run(
        self,
        op: str,
        pipeline_run_id: str,
        step_version_id: str,
        node_key: str,
        *,
        status: StepRunStatus,
        attempt: int,
        params: Optional[Dict[str, Any]],
        error: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ) -> StepRun:
        now = utc_now_iso()
        row = {
            "pipeline_run_id": pipeline_run_id,
            "step_version_id": step_version_id,
            "node_key": node_key,
            "attempt": attempt,
            "status": status.value,
            "started_at": now if status is StepRunStatus.RUNNING else None,
            "completed_at": now if status.is_terminal else None,
            "params": dict(params or {}),
            "error": error,
            "error_kind": ErrorKind(error_kind).value if error_kind is not None else None,
        }
        return StepRun.from_dict(self._write(op, lambda: self.store.create(StepRun.TABLE, row)))

    def start_step_run(
        self,
        pipeline_run_id: str,
        step_version_id: str,
        node_key: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        attempt: int = 1,
    ) -> StepRun:
        """Cria uma StepRun já em `running` (execução direta via `run_step`)."""
        return self._create_step_run(
            "start_step_run",
            pipeline_run_id,
            step_version_id,
            node_key,
            status=StepRunStatus.RUNNING,
            attempt=attempt,
            params=params,
        )

    def queue_step_run(
        self,
        pipeline_run_id: str,
        step_version_id: str,
        node_key: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        attempt: int = 1,
    ) -> StepRun:
        return self._create_step_run(
            "queue_step_run",
            pipeline_run_id,
            step_version_id,
            node_key,
            status=StepRunStatus.QUEUED,
            attempt=attempt,
            params=params,
        )

    def skip_step_run(
        self,
        pipeline_run_id: str,
        step_version_id: str,
        node_key: str,
        *,
        reason: str,
        error_kind: Optional[ErrorKind] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> StepRun:
        """
        Cria uma StepRun terminal `skipped`.

        Skips por condição não carregam erro; skips causados por falha
        (upstream/aborted/cancelled) gravam `reason` em `error`.
        """
        return self._create_step_run(
            "skip_step_run",
            pipeline_run_id,
            step_version_id,
            node_key,
            status=StepRunStatus.SKIPPED,
            attempt=1,
            params=dict(params or {}, skip_reason=reason),
            error=reason if error_kind is not None else None,
            error_kind=error_kind,
        )

    def mark_step_running(self, step_run_id: str) -> StepRun:
        return self._transition_step(
            step_run_id, StepRunStatus.RUNNING, {"started_at": utc_now_iso()}
        )

    def complete_step_run(self, step_run_id: str) -> StepRun:
        return self._transition_step(
            step_run_id, StepRunStatus.COMPLETED, {"completed_at": utc_now_iso()}
        )

    def fail_step(
        self,
        step_run_id: str,
        error: Optional[str],
        *,
        error_kind: ErrorKind = ErrorKind.EXECUTION,
    ) -> StepRun:
        message = (error or "").strip() or "Step failed without error message"
        return self._transition_step(
            step_run_id,
            StepRunStatus.FAILED,
            {
                "completed_at": utc_now_iso(),
                "error": message,
                "error_kind": ErrorKind(error_kind).value,
            },
        )

    # ------------------------------------------------------------------
    # Artefatos
    # ------------------------------------------------------------------
    def record_ir(
        self,
        step_run_id: str,
        ir_json: Dict[str, Any],
        *,
        is_valid: Optional[bool] = None,
        validation_errors: Optional[List[Any]] = None,
    ) -> IRArtifact:
        row = {
            "step_run_id": step_run_id,
            "ir_json": ir_json,
            "is_valid": is_valid,
            "validation_errors": list(validation_errors or []),
            "created_at": utc_now_iso(),
        }
        return IRArtifact.from_dict(
            self._write("record_ir", lambda: self.store.create(IRArtifact.TABLE, row))
        )

    def record_metrics(
        self, step_run_id: str, metrics: Iterable[MetricInput]
    ) -> List[MetricResult]:
        created: List[MetricResult] = []
        for m in metrics:
            row = {
                "step_run_id": step_run_id,
                "metric_key": m.metric_key,
                "value": m.value,
                "string_value": m.string_value,
                "passed": m.passed,
                "details": dict(m.details or {}),
                "created_at": utc_now_iso(),
            }
            created.append(
                MetricResult.from_dict(
                    self._write("record_metrics", lambda: self.store.create(MetricResult.TABLE, row))
                )
            )
        return created

    def link_output(
        self,
        step_run_id: str,
        target_type: str,
        target_id: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> StepOutputLink:
        row = {
            "step_run_id": step_run_id,
            "target_type": target_type,
            "target_id": target_id,
            "meta": dict(meta or {}),
            "created_at": utc_now_iso(),
        }
        return StepOutputLink.from_dict(
            self._write("link_output", lambda: self.store.create(StepOutputLink.TABLE, row))
        )
