# src/templator_flow/core/config/hashing.py
"""
Hash canônico de configuração e de payloads de telemetria.

O hash identifica estruturalmente a configuração efetiva de uma execução
e é gravado no `summary` da PipelineRun, permitindo correlacionar runs
executadas com a mesma configuração.

Política (v1):
    - JSON canônico (chaves ordenadas, separadores compactos, UTF-8)
    - SHA-256, hexadecimal de 64 caracteres
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(value: Any) -> str:
    """Serialização JSON determinística (valores não nativos viram `str`)."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera o hash SHA-256 da configuração efetiva.

    Raises:
        TypeError: Se `config` não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )
    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()


def payload_fingerprint(payload: Any) -> Dict[str, Any]:
    """Metadados leves (bytes + sha256) de um payload, sem truncá-lo."""
    raw = canonical_json(payload).encode("utf-8")
    return {
        "payload_bytes": len(raw),
        "payload_sha256": hashlib.sha256(raw).hexdigest(),
    }
