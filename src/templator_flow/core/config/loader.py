# src/templator_flow/core/config/loader.py
"""
Loader de configuração do Templator Flow.

A configuração efetiva é resolvida a partir de:
    - um arquivo base obrigatório (ex.: `flow.defaults.yaml`)
    - um arquivo local opcional (ex.: `flow.local.yaml`) com overrides

Formatos suportados (v1): YAML (.yaml, .yml) e JSON (.json).

Limites explícitos:
    - Não valida semântica (isso é papel de `settings.resolve_settings`)
    - Não persiste configuração nem hash
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # PyYAML

from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge

PathLike = Union[str, Path]


def read_config_file(path: PathLike) -> Dict[str, Any]:
    """
    Lê um arquivo de configuração e garante raiz do tipo dict.

    Arquivos vazios são interpretados como `{}`.

    Raises:
        DefaultsNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Extensão não suportada.
        InvalidConfigRootTypeError: Raiz diferente de dict.
    """
    path = Path(path)
    if not path.exists():
        raise DefaultsNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )
    return data


def load_config(
    *,
    defaults_path: PathLike,
    local_path: Optional[PathLike] = None,
) -> Dict[str, Any]:
    """
    Carrega defaults e aplica o override local, quando existir.

    Política de resolução:
        - defaults é obrigatório
        - local é opcional; caminho informado mas inexistente é ignorado
        - local sempre tem prioridade (deep-merge)

    Returns:
        Dict[str, Any]: Configuração efetiva (dict puro).
    """
    effective = read_config_file(defaults_path)

    if local_path is not None and Path(local_path).exists():
        effective = deep_merge(effective, read_config_file(local_path))

    return effective


def load_config_text(text: str) -> Dict[str, Any]:
    """Carrega configuração YAML a partir de string (útil em testes e seeds)."""
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )
    return data
