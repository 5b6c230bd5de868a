# tests/core/engine/test_runner.py
"""
Testes do StepRunner (execução de um único Step com telemetria).

Este módulo valida:
- `run_step`: PipelineRun + StepRun próprias, finalização de ambas
- gravação de IR, métricas e links devolvidos pelo executor
- falha por exceção (re-levantada após gravação)
- falha reportada pelo executor (`status="failed"`)
- timeout e violação de contrato
- hooks de início/conclusão
- cancelamento cooperativo de uma tentativa

Limites explícitos:
    - Não valida retries nem políticas do DAG (ver test_scheduler.py)
"""

import threading
import time

import pytest

try:
    from templator_flow.core.engine.runner import RunStepOptions, StepRunner
    from templator_flow.core.errors import STEP_CONTRACT_ERROR, STEP_EXECUTION_ERROR
    from templator_flow.core.exceptions import ExecutorContractError, StepTimeoutError
    from templator_flow.core.pipeline.types import (
        ErrorKind,
        ExecutorResult,
        MetricInput,
        OutputLinkInput,
        PipelineRunStatus,
        StepRunStatus,
    )
    from templator_flow.core.telemetry.models import IRArtifact, MetricResult, StepOutputLink
except Exception as e:  # noqa: BLE001
    StepRunner = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing runner modules. Implement:\n"
            "- src/templator_flow/core/engine/runner.py (StepRunner, RunStepOptions)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def _opts(**kw):
    base = dict(pipeline_version_id="pv-1", step_version_id="sv-extract", node_key="extract")
    base.update(kw)
    return RunStepOptions(**base)


def test_run_step_success_records_everything(recorder, store):
    """
    Verifica o caminho feliz de `run_step`.

    Invariantes:
        - O payload do executor é devolvido
        - PipelineRun e StepRun terminam `completed`
        - Exatamente um IRArtifact e as métricas/links devolvidos são gravados
        - O executor recebe os params do nó
    """
    _require_imports()
    seen = {}

    def executor(params, ctx):
        seen.update(params)
        return ExecutorResult(
            payload={"fields": 3},
            ir={"components": ["header", "form"]},
            ir_valid=True,
            metrics=[MetricInput("confidence", value=92.0), MetricInput("schema_ok", passed=True)],
            outputs=[OutputLinkInput("template", "tpl-1", {"format": "html"})],
        )

    res = StepRunner(recorder).run_step(_opts(params={"lang": "pt"}), executor)

    assert res.result == {"fields": 3}
    assert seen == {"lang": "pt"}
    run = recorder.get_pipeline_run(res.run_id)
    assert run.status is PipelineRunStatus.COMPLETED
    assert run.summary["mode"] == "single_step"
    step = recorder.get_step_run(res.step_run_id)
    assert step.status is StepRunStatus.COMPLETED
    assert step.started_at is not None and step.completed_at is not None

    irs = store.find(IRArtifact.TABLE, step_run_id=step.id)
    assert len(irs) == 1
    assert irs[0]["ir_json"] == {"components": ["header", "form"]}
    assert irs[0]["is_valid"] is True
    assert {m["metric_key"] for m in store.find(MetricResult.TABLE, step_run_id=step.id)} == {
        "confidence",
        "schema_ok",
    }
    links = store.find(StepOutputLink.TABLE, step_run_id=step.id)
    assert [(l["target_type"], l["target_id"]) for l in links] == [("template", "tpl-1")]


def test_run_step_is_not_idempotent(recorder):
    _require_imports()

    runner = StepRunner(recorder)
    first = runner.run_step(_opts(), lambda p, c: ExecutorResult())
    second = runner.run_step(_opts(), lambda p, c: ExecutorResult())

    assert first.run_id != second.run_id
    assert first.step_run_id != second.step_run_id


def test_run_step_exception_is_recorded_then_reraised(recorder, store):
    """
    Verifica a política de falha por exceção.

    Invariantes:
        - A exceção original do executor é re-levantada
        - StepRun termina `failed` com `error` = mensagem e kind `execution`
        - PipelineRun termina `failed` com o payload canônico em `summary.error`
    """
    _require_imports()

    def executor(params, ctx):
        raise RuntimeError("vision model unavailable")

    with pytest.raises(RuntimeError, match="vision model unavailable"):
        StepRunner(recorder).run_step(_opts(), executor)

    [run_row] = store.find("pipeline_runs")
    run = recorder.get_pipeline_run(run_row["id"])
    assert run.status is PipelineRunStatus.FAILED
    assert run.summary["error"]["type"] == STEP_EXECUTION_ERROR
    assert run.summary["error"]["details"]["node_key"] == "extract"

    [step] = recorder.list_step_runs(run.id)
    assert step.status is StepRunStatus.FAILED
    assert step.error == "vision model unavailable"
    assert step.error_kind is ErrorKind.EXECUTION


def test_reported_failure_does_not_raise(recorder, store):
    """
    Um executor que devolve `status="failed"` não levanta exceção.

    A StepRun termina `failed` (kind `reported`), métricas são mantidas e a
    PipelineRun avulsa é concluída com `step_error` no resumo.
    """
    _require_imports()

    def executor(params, ctx):
        return ExecutorResult(
            status="failed",
            error="template rejected by validator",
            metrics=[MetricInput("confidence", value=40.0)],
        )

    res = StepRunner(recorder).run_step(_opts(), executor)

    step = recorder.get_step_run(res.step_run_id)
    assert step.status is StepRunStatus.FAILED
    assert step.error == "template rejected by validator"
    assert step.error_kind is ErrorKind.REPORTED
    assert len(store.find(MetricResult.TABLE, step_run_id=step.id)) == 1

    run = recorder.get_pipeline_run(res.run_id)
    assert run.status is PipelineRunStatus.COMPLETED
    assert run.summary["step_error"] == "template rejected by validator"


def test_reported_failure_without_message_gets_default(recorder):
    _require_imports()

    res = StepRunner(recorder).run_step(_opts(), lambda p, c: ExecutorResult(status="failed"))

    assert recorder.get_step_run(res.step_run_id).error == "Executor reported failure"


def test_timeout_fails_step(recorder):
    _require_imports()
    release = threading.Event()

    def slow(params, ctx):
        release.wait(2)
        return ExecutorResult()

    try:
        with pytest.raises(StepTimeoutError):
            StepRunner(recorder).run_step(_opts(timeout_ms=50), slow)
    finally:
        release.set()

    [step] = recorder.store.find("step_runs")
    assert step["status"] == "failed"
    assert step["error_kind"] == "timeout"


def test_fast_executor_within_timeout_completes(recorder):
    _require_imports()

    res = StepRunner(recorder).run_step(
        _opts(timeout_ms=2000), lambda p, c: ExecutorResult(payload="ok")
    )

    assert res.result == "ok"


def test_wrong_return_type_is_contract_error(recorder):
    _require_imports()

    with pytest.raises(ExecutorContractError) as exc:
        StepRunner(recorder).run_step(_opts(), lambda p, c: {"not": "a result"})

    assert exc.value.details["returned"] == "dict"


@pytest.mark.parametrize(
    "make_result,field",
    [
        (lambda: ExecutorResult(metrics=[{"metric_key": "m", "value": 1}]), "metrics"),
        (lambda: ExecutorResult(outputs=[{"target_type": "t", "target_id": "1"}]), "outputs"),
        (lambda: ExecutorResult(status="done"), "status"),
        (lambda: ExecutorResult(status=StepRunStatus.SKIPPED), "status"),
    ],
)
def test_malformed_result_is_contract_error_before_any_write(recorder, store, make_result, field):
    """
    Verifica a validação de campos do ExecutorResult.

    Invariantes:
        - ExecutorContractError é re-levantada por `run_step`
        - StepRun e PipelineRun terminam `failed` (nenhuma fica `running`)
        - Nenhuma métrica ou link é gravado
    """
    _require_imports()

    with pytest.raises(ExecutorContractError) as exc:
        StepRunner(recorder).run_step(_opts(), lambda p, c: make_result())

    assert field in exc.value.message

    [run_row] = store.find("pipeline_runs")
    assert run_row["status"] == "failed"
    assert run_row["summary"]["error"]["type"] == STEP_CONTRACT_ERROR

    [step] = store.find("step_runs")
    assert step["status"] == "failed"
    assert step["error_kind"] == "execution"
    assert store.find(MetricResult.TABLE) == []
    assert store.find(StepOutputLink.TABLE) == []


def test_explicit_completed_status_is_accepted(recorder):
    _require_imports()

    res = StepRunner(recorder).run_step(_opts(), lambda p, c: ExecutorResult(status="completed"))

    assert recorder.get_step_run(res.step_run_id).status is StepRunStatus.COMPLETED


def test_hooks_are_called(recorder):
    _require_imports()
    events = []

    runner = StepRunner(
        recorder,
        on_start=lambda run_id, sr_id: events.append(("start", sr_id)),
        on_complete=lambda run_id, sr_id, status: events.append(("complete", sr_id, status)),
    )
    res = runner.run_step(_opts(), lambda p, c: ExecutorResult())

    assert events == [
        ("start", res.step_run_id),
        ("complete", res.step_run_id, StepRunStatus.COMPLETED),
    ]


def test_execute_attempt_honours_cancellation(recorder, run_ctx):
    """
    Cancelamento sinalizado durante a execução descarta o resultado.

    Invariantes:
        - A StepRun termina `failed` com kind `cancelled`
        - Nenhuma métrica devolvida pelo executor é gravada
    """
    _require_imports()
    cancel = threading.Event()
    run = recorder.start_pipeline_run("pv-1")
    recorder.mark_pipeline_running(run.id)
    step_run = recorder.queue_step_run(run.id, "sv-extract", "extract")

    def executor(params, ctx):
        cancel.set()
        time.sleep(0.01)
        return ExecutorResult(metrics=[MetricInput("confidence", value=99.0)])

    outcome = StepRunner(recorder).execute_attempt(
        step_run, executor, params={}, ctx=run_ctx, cancel_event=cancel
    )

    assert outcome.succeeded is False
    assert outcome.error_kind is ErrorKind.CANCELLED
    final = recorder.get_step_run(step_run.id)
    assert final.status is StepRunStatus.FAILED
    assert final.error_kind is ErrorKind.CANCELLED
    assert recorder.store.find(MetricResult.TABLE, step_run_id=step_run.id) == []
