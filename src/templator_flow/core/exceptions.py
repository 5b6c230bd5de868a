"""
Templator Flow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do Templator Flow.

Objetivo:
- Permitir que planner, runner, scheduler e recorder levantem exceções
  semânticas tipadas
- Facilitar o mapeamento determinístico para FlowErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`
- Mensagens são curtas e humanas
- Stack traces nunca entram em payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class FlowException(Exception):
    """Base class para exceções internas do Templator Flow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Planejamento (fatal, antes de qualquer escrita)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class PlanningError(FlowException):
    """DAG inválido detectado em tempo de planejamento."""


@dataclass(eq=False)
class CycleDetected(PlanningError):
    """O grafo de dependências contém um ciclo."""


@dataclass(eq=False)
class UnknownDependencyError(PlanningError):
    """Aresta ou `depends_on` referencia um nó inexistente."""


@dataclass(eq=False)
class DuplicateNodeKeyError(PlanningError):
    """Dois nós do DAG compartilham a mesma chave."""


@dataclass(eq=False)
class ReservedNodeKeyError(PlanningError):
    """Chave de nó colide com um namespace reservado do RunContext."""


@dataclass(eq=False)
class UnknownStepVersionError(PlanningError):
    """Nó referencia uma StepVersion não registrada."""


@dataclass(eq=False)
class MissingExecutorError(PlanningError):
    """Nenhum executor registrado para a chave do Step."""


@dataclass(eq=False)
class PipelineVersionNotFound(PlanningError):
    """PipelineVersion solicitada não existe no store."""


# ---------------------------------------------------------------------------
# Execução (política por nó: continue_on_fail)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class StepExecutionError(FlowException):
    """Falha do executor de um Step (encapsulada)."""


@dataclass(eq=False)
class StepTimeoutError(StepExecutionError):
    """O executor excedeu `timeout_ms` do nó."""


@dataclass(eq=False)
class ExecutorContractError(StepExecutionError):
    """O executor retornou algo diferente de ExecutorResult."""


@dataclass(eq=False)
class StepCancelledError(StepExecutionError):
    """A run foi cancelada enquanto o Step executava."""


# ---------------------------------------------------------------------------
# Telemetria / persistência (sempre fatal)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class RecordStoreError(FlowException):
    """Falha do record store subjacente."""


@dataclass(eq=False)
class RecordNotFoundError(RecordStoreError):
    """Registro inexistente para o id informado."""


@dataclass(eq=False)
class TelemetryWriteError(FlowException):
    """Escrita de telemetria falhou; perda de auditoria é tratada como falha."""


@dataclass(eq=False)
class InvalidTransitionError(TelemetryWriteError):
    """Transição de status proibida (regressão ou reescrita de estado terminal)."""


# ---------------------------------------------------------------------------
# Catálogo
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class CatalogError(FlowException):
    """Entrada de registro inválida para o catálogo."""
