# src/templator_flow/core/config/errors.py
"""
Exceções da camada de configuração do Templator Flow.

Todas herdam de `ConfigError` e representam violações estruturais de
configuração, nunca falhas de execução de Steps.

Invariantes:
    - Nenhuma exceção aqui representa erro de domínio
    - Erros de configuração são sempre fatais para quem carrega
"""


class ConfigError(Exception):
    """Base para erros de carregamento, merge ou resolução de settings."""


class DefaultsNotFoundError(ConfigError):
    """O arquivo base (defaults) não existe no caminho informado."""


class UnsupportedConfigFormatError(ConfigError):
    """Extensão de arquivo fora de {.yaml, .yml, .json}."""


class InvalidConfigRootTypeError(ConfigError):
    """A raiz do documento carregado não é um mapeamento."""


class ConfigTypeConflictError(ConfigError):
    """Base e override divergem no tipo de uma mesma chave."""


class InvalidSettingError(ConfigError):
    """
    Valor de setting fora do domínio aceito.

    Levantada por `resolve_settings` quando, por exemplo,
    `engine.max_workers < 1` ou `engine.condition_policy` é desconhecida.
    """
