"""
Templator Flow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Templator Flow.
Erros fazem parte do contrato operacional do sistema e são gravados nos
resumos de PipelineRun e no campo `error` de StepRun, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

A superfície visível ao usuário é sempre `status` + `error` string;
o payload estruturado vive no `summary` da run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .exceptions import (
    CycleDetected,
    ExecutorContractError,
    FlowException,
    PlanningError,
    StepCancelledError,
    StepTimeoutError,
    TelemetryWriteError,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FlowErrorPayload:
    """
    Payload canônico de erro do Templator Flow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

PLANNING_ERROR = "PLANNING_ERROR"
PLANNING_CYCLE_DETECTED = "PLANNING_CYCLE_DETECTED"

STEP_EXECUTION_ERROR = "STEP_EXECUTION_ERROR"
STEP_TIMEOUT = "STEP_TIMEOUT"
STEP_CANCELLED = "STEP_CANCELLED"
STEP_CONTRACT_ERROR = "STEP_CONTRACT_ERROR"
STEP_REPORTED_FAILURE = "STEP_REPORTED_FAILURE"

TELEMETRY_WRITE_ERROR = "TELEMETRY_WRITE_ERROR"


def _error_type_for(exc: BaseException) -> str:
    # Ordem importa: subclasses antes das bases
    if isinstance(exc, CycleDetected):
        return PLANNING_CYCLE_DETECTED
    if isinstance(exc, PlanningError):
        return PLANNING_ERROR
    if isinstance(exc, StepTimeoutError):
        return STEP_TIMEOUT
    if isinstance(exc, StepCancelledError):
        return STEP_CANCELLED
    if isinstance(exc, ExecutorContractError):
        return STEP_CONTRACT_ERROR
    if isinstance(exc, TelemetryWriteError):
        return TELEMETRY_WRITE_ERROR
    return STEP_EXECUTION_ERROR


def error_message(exc: BaseException) -> str:
    """Mensagem não vazia para gravação em `StepRun.error`."""
    msg = str(exc).strip()
    return msg or exc.__class__.__name__


def to_error_payload(exc: BaseException, *, node_key: Optional[str] = None) -> FlowErrorPayload:
    """Converte exceções em FlowErrorPayload (serializável, acionável).

    Regras:
    - FlowException: já vem com message/details/hint.
    - Outras exceções: encapsular como STEP_EXECUTION_ERROR sem expor stack trace.
    """
    if isinstance(exc, FlowException):
        details = dict(exc.details or {})
        if node_key is not None:
            details.setdefault("node_key", node_key)
        return FlowErrorPayload(
            type=_error_type_for(exc),
            message=error_message(exc),
            details=details,
            hint=exc.hint,
        )

    details = {"exception_class": exc.__class__.__name__}
    if node_key is not None:
        details["node_key"] = node_key
    return FlowErrorPayload(
        type=STEP_EXECUTION_ERROR,
        message=error_message(exc),
        details=details,
        hint="Verifique o executor do Step e os parâmetros do nó",
    )


def reported_failure_payload(message: str, *, node_key: Optional[str] = None) -> FlowErrorPayload:
    """Payload para falhas devolvidas pelo executor (`status="failed"`), sem exceção."""
    details: Dict[str, Any] = {"error_kind": "reported"}
    if node_key is not None:
        details["node_key"] = node_key
    return FlowErrorPayload(
        type=STEP_REPORTED_FAILURE,
        message=message,
        details=details,
    )
