# tests/conftest.py
"""
Fixtures compartilhados para testes do Templator Flow.

Este módulo define fixtures reutilizáveis que fornecem:
- um RecordStore em memória isolado por teste
- TelemetryRecorder e PipelineCatalog ligados a esse store
- RunContext determinístico
- fábricas de executores (sucesso, falha, falha reportada, lento)

Decisões arquiteturais:
    - Imports do core são realizados de forma lazy dentro das fixtures
      para melhorar a clareza de erros durante falhas de import
    - Executores dummy são funções puras sobre (params, ctx)
    - Nenhuma fixture realiza I/O (exceto quando o teste usa tmp_path)

Limites explícitos:
    - Não substituir testes de integração
    - Não conter lógica de domínio
"""

import threading
from datetime import datetime, timezone

import pytest


# =====================================================
# Config
# =====================================================

@pytest.fixture
def flow_defaults_yaml() -> str:
    """YAML de defaults semelhante a um `flow.defaults.yaml` real."""
    return """\
engine:
  max_workers: 4
  condition_policy: fail_open
  default_retries: 0
refinement:
  max_iterations: 3
  confidence_threshold: 85
  focus_areas:
    - accessibility
telemetry:
  store: memory
"""


@pytest.fixture
def flow_local_yaml() -> str:
    """Overrides locais: altera escalares e substitui listas."""
    return """\
engine:
  max_workers: 2
refinement:
  focus_areas:
    - performance
    - syntax
"""


# =====================================================
# Telemetria + catálogo
# =====================================================

@pytest.fixture
def store():
    from templator_flow.core.telemetry.store import InMemoryRecordStore

    return InMemoryRecordStore()


@pytest.fixture
def recorder(store):
    from templator_flow.core.telemetry.recorder import TelemetryRecorder

    return TelemetryRecorder(store)


@pytest.fixture
def catalog(store):
    from templator_flow.core.catalog.catalog import PipelineCatalog

    return PipelineCatalog(store)


@pytest.fixture
def run_ctx():
    """
    RunContext determinístico.

    `run_id` e `created_at` são fixos para garantir reprodutibilidade.
    """
    from templator_flow.core.pipeline.context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        config={"engine": {"max_workers": 2}},
        meta={"source": "pytest"},
    )


# =====================================================
# Executores
# =====================================================

@pytest.fixture
def calls():
    """Registro thread-safe das chamadas de executores (ordem de execução)."""

    class _Calls(list):
        def __init__(self):
            super().__init__()
            self.lock = threading.Lock()

        def record(self, key):
            with self.lock:
                self.append(key)

    return _Calls()


@pytest.fixture
def ok_executor(calls):
    """
    Fábrica de executores de sucesso.

    O executor registra a chamada em `calls`, publica `metrics` e devolve
    `payload` (default: {"node": name}).
    """
    from templator_flow.core.pipeline.types import ExecutorResult, MetricInput

    def _factory(name, *, metrics=None, payload=None, context=None):
        def _run(params, ctx):
            calls.record(name)
            return ExecutorResult(
                payload=payload if payload is not None else {"node": name, "params": dict(params)},
                metrics=[MetricInput(k, value=v) for k, v in (metrics or {}).items()],
                context=dict(context or {}),
            )

        return _run

    return _factory


@pytest.fixture
def failing_executor(calls):
    """Fábrica de executores que sempre levantam RuntimeError."""

    def _factory(name, message="boom"):
        def _run(params, ctx):
            calls.record(name)
            raise RuntimeError(message)

        return _run

    return _factory


@pytest.fixture
def flaky_executor(calls):
    """Falha nas `failures` primeiras chamadas e depois devolve sucesso."""
    from templator_flow.core.pipeline.types import ExecutorResult

    def _factory(name, failures):
        state = {"n": 0}

        def _run(params, ctx):
            calls.record(name)
            state["n"] += 1
            if state["n"] <= failures:
                raise RuntimeError(f"transient failure {state['n']}")
            return ExecutorResult(payload={"attempts": state["n"]})

        return _run

    return _factory


# =====================================================
# Montagem de pipelines
# =====================================================

@pytest.fixture
def build_pipeline(catalog, recorder):
    """
    Registra um pipeline e devolve (ensure_result, scheduler).

    Uso:
        result, scheduler = build_pipeline(
            "demo", [StepSpec(key="a"), ...], {"a": executor, ...}
        )
    """
    from templator_flow.core.config.settings import EngineSettings
    from templator_flow.core.engine.scheduler import DagScheduler
    from templator_flow.core.pipeline.registry import ExecutorRegistry

    def _build(name, specs, executors, *, version="1.0.0", edges=None, settings=None):
        ensured = catalog.ensure(name, version, specs, edges=edges)
        registry = ExecutorRegistry.from_mapping(executors)
        scheduler = DagScheduler(
            catalog,
            recorder,
            registry,
            settings=settings or EngineSettings(max_workers=4),
        )
        return ensured, scheduler

    return _build
