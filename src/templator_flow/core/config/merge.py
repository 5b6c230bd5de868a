# src/templator_flow/core/config/merge.py
"""
Deep-merge de configuração (defaults + overrides).

Política (v1):
    - dict + dict → merge recursivo por chave
    - list        → substituição integral
    - escalar     → substituição direta
    - tipos distintos → ConfigTypeConflictError

`None` em qualquer lado é tratado como "valor ausente": um override `None`
limpa a chave (útil para `engine.default_timeout_ms: null`), e uma base
`None` aceita qualquer tipo do override.

O merge é puramente funcional: nenhum input é mutado.
"""

from copy import deepcopy
from typing import Any, Dict

from .errors import ConfigTypeConflictError


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combina `override` sobre `base` e devolve um novo dicionário.

    Args:
        base (Dict[str, Any]): Configuração base (ex.: defaults).
        override (Dict[str, Any]): Overrides explícitos.

    Returns:
        Dict[str, Any]: Configuração resultante.

    Raises:
        ConfigTypeConflictError: Se base e override divergirem de tipo
            numa mesma chave (exceto int/float e valores None).
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts na raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )

    merged: Dict[str, Any] = deepcopy(base)
    for key, incoming in override.items():
        current = merged.get(key)

        if key not in merged or current is None or incoming is None:
            merged[key] = deepcopy(incoming)
        elif isinstance(current, dict) and isinstance(incoming, dict):
            merged[key] = deep_merge(current, incoming)
        elif isinstance(incoming, list):
            merged[key] = deepcopy(incoming)
        elif _compatible(current, incoming):
            merged[key] = deepcopy(incoming)
        else:
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{key}': "
                f"{type(current).__name__} vs {type(incoming).__name__}"
            )
    return merged


def _compatible(current: Any, incoming: Any) -> bool:
    # bool é subclasse de int; não deixar True/False substituir números
    if isinstance(current, bool) or isinstance(incoming, bool):
        return isinstance(current, bool) and isinstance(incoming, bool)
    numeric = (int, float)
    if isinstance(current, numeric) and isinstance(incoming, numeric):
        return True
    return type(current) is type(incoming)
