# src/templator_flow/core/pipeline/context.py
"""
Contexto de execução compartilhado de uma PipelineRun.

Este módulo define o `RunContext`, a estrutura canônica passada a todos os
executores e consultada pelo scheduler ao avaliar condições de nós.

O RunContext atua como o único meio permitido de:
    - troca indireta de informações entre Steps (valores e artefatos)
    - registro de logs estruturados de execução
    - coleta de warnings não fatais associados a nós

Invariantes:
    - `values` só cresce: um nó é dobrado (`fold`) uma única vez
    - `metrics` é um namespace reservado: `values["metrics"][<nó>]` espelha
      as métricas de cada nó dobrado
    - Logs sempre incluem `run_id` e `step_id`
    - Escritas são protegidas por lock (nós paralelos compartilham o contexto)

Limites explícitos:
    - Não executa Steps
    - Não decide políticas de execução
    - Não persiste dados automaticamente
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

METRICS_NAMESPACE = "metrics"


@dataclass
class RunContext:
    """
    Contexto de execução de uma run.

    `values` guarda, por chave de nó, o que foi dobrado após a conclusão:

        {"extract": {"status": "completed",
                     "metrics": {"confidence": 91.0},
                     "attempts": 1,
                     ...valores publicados em ExecutorResult.context}}

    As métricas de cada nó também ficam sob o namespace reservado
    `metrics` (`{"metrics": {"extract": {"confidence": 91.0}}}`).

    Condições navegam esse mapa com caminhos pontuados
    (`extract.metrics.confidence` ou `metrics.extract.confidence`).
    """

    run_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    config: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)

    values: Dict[str, Any] = field(
        default_factory=lambda: {METRICS_NAMESPACE: {}}, init=False
    )
    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _artifacts: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    # -----------------------------
    # Valores para condições
    # -----------------------------
    def fold(self, node_key: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            if node_key == METRICS_NAMESPACE:
                raise KeyError(f"Reserved context key: {node_key}")
            if node_key in self.values:
                raise KeyError(f"Node already folded into context: {node_key}")
            self.values[node_key] = dict(entry)
            metrics = entry.get("metrics")
            if isinstance(metrics, dict):
                self.values[METRICS_NAMESPACE][node_key] = dict(metrics)

    def resolve(self, path: str) -> Any:
        """Resolve `a.b.c` em `values`; caminho ausente devolve `None`."""
        with self._lock:
            current: Any = self.values
            for part in path.split("."):
                if isinstance(current, dict) and part in current:
                    current = current[part]
                else:
                    return None
            return current

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            snap = {k: dict(v) if isinstance(v, dict) else v for k, v in self.values.items()}
            snap[METRICS_NAMESPACE] = {
                k: dict(v) for k, v in self.values[METRICS_NAMESPACE].items()
            }
            return snap

    # -----------------------------
    # Artifact store
    # -----------------------------
    def set_artifact(self, key: str, value: Any) -> None:
        with self._lock:
            self._artifacts[key] = value

    def has_artifact(self, key: str) -> bool:
        with self._lock:
            return key in self._artifacts

    def get_artifact(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._artifacts.get(key, default)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, step_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "step_id": step_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, step_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(step_id, []).append(message)
