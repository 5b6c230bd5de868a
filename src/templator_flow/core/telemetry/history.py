# src/templator_flow/core/telemetry/history.py
"""
Reconstrução do histórico de runs a partir das linhas gravadas.

Toda a informação necessária para auditar uma execução está no RecordStore;
este módulo apenas lê e reorganiza:

    - reconstruct_run  → dict aninhado (run → nós → tentativas → IR/métricas/links)
    - step_runs_frame  → DataFrame com uma linha por StepRun
    - metrics_frame    → DataFrame com uma linha por MetricResult
    - attempts_by_node → resumo de tentativas/retries por nó
    - run_progress     → progresso da run contra o plano gravado no summary

Limites explícitos:
    - Somente leitura
    - Não depende do scheduler nem de RunContext
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pandas as pd

from .models import IRArtifact, MetricResult, PipelineRun, StepOutputLink, StepRun
from .store import RecordStore

STEP_RUN_COLUMNS = [
    "id",
    "node_key",
    "attempt",
    "status",
    "error_kind",
    "error",
    "started_at",
    "completed_at",
    "step_version_id",
]

METRIC_COLUMNS = [
    "node_key",
    "attempt",
    "metric_key",
    "value",
    "string_value",
    "passed",
    "step_run_id",
]


def _step_rows(store: RecordStore, pipeline_run_id: str) -> List[Dict[str, Any]]:
    return store.find(StepRun.TABLE, pipeline_run_id=pipeline_run_id)


def reconstruct_run(store: RecordStore, pipeline_run_id: str) -> Dict[str, Any]:
    """
    Reconstrói uma run completa somente a partir das linhas persistidas.

    Returns:
        Dict com `run` (linha da PipelineRun) e `nodes`, um mapa
        `node_key → [tentativas]`, cada tentativa com `ir`, `metrics` e
        `outputs` anexados. Tentativas seguem a ordem de `attempt`.
    """
    run = store.get(PipelineRun.TABLE, pipeline_run_id)
    nodes: Dict[str, List[Dict[str, Any]]] = {}

    for step in _step_rows(store, pipeline_run_id):
        entry = dict(step)
        entry["ir"] = store.find(IRArtifact.TABLE, step_run_id=step["id"])
        entry["metrics"] = store.find(MetricResult.TABLE, step_run_id=step["id"])
        entry["outputs"] = store.find(StepOutputLink.TABLE, step_run_id=step["id"])
        nodes.setdefault(step["node_key"], []).append(entry)

    for attempts in nodes.values():
        attempts.sort(key=lambda a: a.get("attempt") or 0)

    return {"run": run, "nodes": nodes}


def step_runs_frame(store: RecordStore, pipeline_run_id: str) -> pd.DataFrame:
    rows = _step_rows(store, pipeline_run_id)
    df = pd.DataFrame(rows, columns=STEP_RUN_COLUMNS)
    return df.reset_index(drop=True)


def metrics_frame(store: RecordStore, pipeline_run_id: str) -> pd.DataFrame:
    records: List[Dict[str, Any]] = []
    for step in _step_rows(store, pipeline_run_id):
        for m in store.find(MetricResult.TABLE, step_run_id=step["id"]):
            records.append(
                {
                    "node_key": step["node_key"],
                    "attempt": step.get("attempt"),
                    "metric_key": m["metric_key"],
                    "value": m.get("value"),
                    "string_value": m.get("string_value"),
                    "passed": m.get("passed"),
                    "step_run_id": step["id"],
                }
            )
    return pd.DataFrame(records, columns=METRIC_COLUMNS)


def attempts_by_node(store: RecordStore, pipeline_run_id: str) -> pd.DataFrame:
    """
    Uma linha por nó: total de tentativas, retries e status da última tentativa.

    Colunas: node_key, attempts, retries, final_status.
    """
    df = step_runs_frame(store, pipeline_run_id)
    if df.empty:
        return pd.DataFrame(columns=["node_key", "attempts", "retries", "final_status"])

    df = df.sort_values(["node_key", "attempt"], kind="stable")
    grouped = df.groupby("node_key", sort=False)
    summary = pd.DataFrame(
        {
            "attempts": grouped["attempt"].max(),
            "final_status": grouped["status"].last(),
        }
    ).reset_index()
    summary["retries"] = summary["attempts"] - 1
    return summary[["node_key", "attempts", "retries", "final_status"]]


# ---------------------------------------------------------------------------
# Progresso
# ---------------------------------------------------------------------------

PROGRESS_STATUSES = ("pending", "queued", "running", "completed", "failed", "skipped")
_TERMINAL_STEP = ("completed", "failed", "skipped")
_TERMINAL_RUN = ("completed", "failed", "cancelled")


@dataclass(frozen=True)
class RunProgress:
    """
    Fotografia do progresso de uma run.

    `nodes` mapeia cada nó do plano ao status da sua última tentativa
    (`pending` quando ainda não há StepRun). `overall_percent` é a fração de
    nós em status terminal.
    """

    pipeline_run_id: str
    status: str
    overall_percent: int
    nodes: Dict[str, str] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    current_nodes: List[str] = field(default_factory=list)
    avg_node_ms: Optional[float] = None
    estimated_completion: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        return sum(self.counts.get(s, 0) for s in ("pending", "queued", "running"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline_run_id": self.pipeline_run_id,
            "status": self.status,
            "overall_percent": self.overall_percent,
            "nodes": dict(self.nodes),
            "counts": dict(self.counts),
            "current_nodes": list(self.current_nodes),
            "avg_node_ms": self.avg_node_ms,
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
        }


def _avg_completed_ms(latest: pd.DataFrame) -> Optional[float]:
    done = latest[latest["status"] == "completed"].dropna(subset=["started_at", "completed_at"])
    if done.empty:
        return None
    durations = [
        (datetime.fromisoformat(end) - datetime.fromisoformat(start)).total_seconds() * 1000.0
        for start, end in zip(done["started_at"], done["completed_at"])
    ]
    return sum(durations) / len(durations)


def run_progress(
    store: RecordStore, pipeline_run_id: str, *, now: Optional[datetime] = None
) -> RunProgress:
    """
    Calcula o progresso de uma run somente a partir das linhas persistidas.

    O plano vem de `summary.plan` (gravado pelo DagScheduler na abertura da
    run); nós com StepRuns fora do plano (ex.: `run_step`) são acrescentados
    na ordem em que aparecem.

    A estimativa de conclusão usa a duração média dos nós concluídos
    multiplicada pelos nós restantes e só existe enquanto a run não é terminal.
    """
    run = store.get(PipelineRun.TABLE, pipeline_run_id)
    df = step_runs_frame(store, pipeline_run_id)

    latest = df.sort_values(["node_key", "attempt"], kind="stable").drop_duplicates(
        "node_key", keep="last"
    )
    latest_status = dict(zip(latest["node_key"], latest["status"]))

    plan: List[str] = list((run.get("summary") or {}).get("plan") or [])
    for key in df["node_key"]:
        if key not in plan:
            plan.append(key)

    nodes = {key: latest_status.get(key, "pending") for key in plan}
    counts = {s: 0 for s in PROGRESS_STATUSES}
    for status in nodes.values():
        counts[status] = counts.get(status, 0) + 1

    done = sum(counts[s] for s in _TERMINAL_STEP)
    if nodes:
        percent = int(round(100.0 * done / len(nodes)))
    else:
        percent = 100 if run["status"] in _TERMINAL_RUN else 0

    avg_ms = _avg_completed_ms(latest)
    progress = RunProgress(
        pipeline_run_id=pipeline_run_id,
        status=run["status"],
        overall_percent=percent,
        nodes=nodes,
        counts=counts,
        current_nodes=[k for k, s in nodes.items() if s == "running"],
        avg_node_ms=avg_ms,
    )
    if avg_ms is None or run["status"] in _TERMINAL_RUN or progress.remaining == 0:
        return progress

    start = now or datetime.now(timezone.utc)
    eta = start + timedelta(milliseconds=avg_ms * progress.remaining)
    return replace(progress, estimated_completion=eta)
