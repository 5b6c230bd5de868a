# src/templator_flow/core/pipeline/registry.py
"""
Registro de executores de Steps.

O `ExecutorRegistry` mapeia a chave estável de um StepDefinition
(ex.: `vision.extract`) para o callable que executa o Step:

    executor(params: dict, ctx: RunContext) -> ExecutorResult

O registry é montado pelo chamador e injetado no scheduler; não existe
registro global.

Invariantes:
    - Cada chave possui no máximo um executor
    - A ordem de registro é preservada

Limites explícitos:
    - Não planeja nem executa Steps
    - Não valida o retorno do executor (papel do StepRunner)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..exceptions import MissingExecutorError
from .context import RunContext
from .types import ExecutorResult

Executor = Callable[[Dict[str, Any], RunContext], ExecutorResult]


class DuplicateExecutorError(ValueError):
    """Duas funções registradas para a mesma chave de Step."""


@dataclass
class ExecutorRegistry:
    _executors: Dict[str, Executor] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def from_mapping(cls, executors: Optional[Mapping[str, Executor]] = None) -> "ExecutorRegistry":
        registry = cls()
        for key, fn in (executors or {}).items():
            registry.register(key, fn)
        return registry

    def register(self, step_key: str, executor: Executor) -> None:
        if not isinstance(step_key, str) or not step_key.strip():
            raise ValueError("step_key must be a non-empty string")
        if not callable(executor):
            raise TypeError(f"executor for '{step_key}' must be callable")
        if step_key in self._executors:
            raise DuplicateExecutorError(f"Duplicate executor for step key: {step_key}")
        self._executors[step_key] = executor
        self._order.append(step_key)

    def has(self, step_key: str) -> bool:
        return step_key in self._executors

    def get(self, step_key: str) -> Executor:
        if step_key not in self._executors:
            raise MissingExecutorError(
                f"Nenhum executor registrado para o Step '{step_key}'",
                details={"step_key": step_key, "registered": list(self._order)},
                hint="Registre o executor no ExecutorRegistry antes de executar",
            )
        return self._executors[step_key]

    def keys(self) -> List[str]:
        return list(self._order)
