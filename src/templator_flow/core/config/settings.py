# src/templator_flow/core/config/settings.py
"""
Settings tipados do Templator Flow.

Este módulo transforma a configuração efetiva (dict puro) em estruturas
imutáveis consumidas pelos componentes do core:

    - EngineSettings      → scheduler e runner
    - RefinementSettings  → RefinementController
    - TelemetrySettings   → construção do RecordStore

Decisões arquiteturais:
    - `DEFAULT_CONFIG` é a base canônica; qualquer configuração do usuário
      é aplicada por deep-merge sobre ela
    - Valores fora do domínio geram `InvalidSettingError`
    - Settings são frozen: componentes recebem uma cópia estável
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidSettingError
from .merge import deep_merge

CONDITION_POLICIES = ("fail_open", "fail_closed")
STORE_KINDS = ("memory", "json")

DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "max_workers": 4,
        "condition_policy": "fail_open",
        "default_retries": 0,
        "default_timeout_ms": None,
    },
    "refinement": {
        "max_iterations": 3,
        "confidence_threshold": 85,
        "improvement_threshold": 10,
        "focus_areas": [],
    },
    "telemetry": {
        "store": "memory",
        "path": None,
    },
}


@dataclass(frozen=True)
class EngineSettings:
    max_workers: int = 4
    condition_policy: str = "fail_open"
    default_retries: int = 0
    default_timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class RefinementSettings:
    max_iterations: int = 3
    confidence_threshold: float = 85
    improvement_threshold: float = 10
    focus_areas: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TelemetrySettings:
    store: str = "memory"
    path: Optional[str] = None


@dataclass(frozen=True)
class FlowSettings:
    """Settings resolvidos e validados de uma instância do Templator Flow."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    refinement: RefinementSettings = field(default_factory=RefinementSettings)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise InvalidSettingError(f"Seção '{name}' deve ser um mapeamento")
    return value


def _non_negative_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidSettingError(f"'{key}' deve ser inteiro >= 0, recebido: {value!r}")
    return value


def resolve_settings(config: Optional[Dict[str, Any]] = None) -> FlowSettings:
    """
    Resolve `FlowSettings` aplicando `config` sobre `DEFAULT_CONFIG`.

    Args:
        config: Configuração efetiva (ex.: retorno de `load_config`). `None`
            produz os defaults.

    Raises:
        InvalidSettingError: Valor fora do domínio aceito.
        ConfigTypeConflictError: Tipo incompatível com o default.
    """
    effective = deep_merge(DEFAULT_CONFIG, config or {})

    eng = _section(effective, "engine")
    max_workers = _non_negative_int(eng.get("max_workers"), "engine.max_workers")
    if max_workers < 1:
        raise InvalidSettingError("'engine.max_workers' deve ser >= 1")
    policy = eng.get("condition_policy")
    if policy not in CONDITION_POLICIES:
        raise InvalidSettingError(
            f"'engine.condition_policy' deve ser um de {CONDITION_POLICIES}, recebido: {policy!r}"
        )
    timeout = eng.get("default_timeout_ms")
    if timeout is not None:
        timeout = _non_negative_int(timeout, "engine.default_timeout_ms")

    ref = _section(effective, "refinement")
    max_iterations = _non_negative_int(ref.get("max_iterations"), "refinement.max_iterations")
    if max_iterations < 1:
        raise InvalidSettingError("'refinement.max_iterations' deve ser >= 1")
    focus: List[str] = [str(a) for a in (ref.get("focus_areas") or [])]

    tel = _section(effective, "telemetry")
    store_kind = tel.get("store")
    if store_kind not in STORE_KINDS:
        raise InvalidSettingError(
            f"'telemetry.store' deve ser um de {STORE_KINDS}, recebido: {store_kind!r}"
        )
    if store_kind == "json" and not tel.get("path"):
        raise InvalidSettingError("'telemetry.path' é obrigatório quando telemetry.store = json")

    return FlowSettings(
        engine=EngineSettings(
            max_workers=max_workers,
            condition_policy=policy,
            default_retries=_non_negative_int(eng.get("default_retries"), "engine.default_retries"),
            default_timeout_ms=timeout,
        ),
        refinement=RefinementSettings(
            max_iterations=max_iterations,
            confidence_threshold=float(ref.get("confidence_threshold")),
            improvement_threshold=float(ref.get("improvement_threshold")),
            focus_areas=tuple(focus),
        ),
        telemetry=TelemetrySettings(store=store_kind, path=tel.get("path")),
        raw=effective,
    )
