# src/templator_flow/core/config/__init__.py
"""
Camada de configuração do Templator Flow.

Responsabilidades do pacote:
    - Carregamento de arquivos (defaults + overrides locais) em YAML/JSON
    - Resolução via deep-merge determinístico
    - Hash canônico para rastreabilidade das runs
    - Conversão para settings tipados e validados

Limites explícitos:
    - Não executa pipeline
    - Não interage com scheduler ou Steps diretamente
"""

from .errors import (
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    InvalidSettingError,
    UnsupportedConfigFormatError,
)
from .hashing import compute_config_hash
from .loader import load_config, load_config_text
from .merge import deep_merge
from .settings import (
    DEFAULT_CONFIG,
    EngineSettings,
    FlowSettings,
    RefinementSettings,
    TelemetrySettings,
    resolve_settings,
)

__all__ = [
    "ConfigError",
    "ConfigTypeConflictError",
    "DEFAULT_CONFIG",
    "DefaultsNotFoundError",
    "EngineSettings",
    "FlowSettings",
    "InvalidConfigRootTypeError",
    "InvalidSettingError",
    "RefinementSettings",
    "TelemetrySettings",
    "UnsupportedConfigFormatError",
    "compute_config_hash",
    "deep_merge",
    "load_config",
    "load_config_text",
    "resolve_settings",
]
