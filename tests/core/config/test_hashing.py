# tests/core/config/test_hashing.py
"""
Testes do hash canônico de configuração e do fingerprint de payloads.

Os testes asseguram que:
- o hash é determinístico e independente da ordem das chaves
- o hash corresponde ao SHA-256 do JSON canônico
- mudanças semânticas produzem hashes diferentes
- o fingerprint de payload descreve tamanho e sha256 sem truncar

Limites explícitos:
    - Não valida carregamento de arquivos
    - Não valida persistência do hash na PipelineRun (ver testes do scheduler)
"""

import hashlib
import json

import pytest

try:
    from templator_flow.core.config.hashing import (
        canonical_json,
        compute_config_hash,
        payload_fingerprint,
    )
except Exception as e:  # noqa: BLE001
    compute_config_hash = None
    canonical_json = None
    payload_fingerprint = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing config hashing module. Implement:\n"
            "- src/templator_flow/core/config/hashing.py (compute_config_hash)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def _canonical_json_bytes(obj: dict) -> bytes:
    """
    Referência explícita de "JSON canônico" para os testes.

    Chaves ordenadas, separadores compactos, UTF-8.
    """
    s = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def test_hash_is_deterministic():
    """
    Verifica que o hash da configuração independe da ordem das chaves.

    Invariantes:
        - Configurações semanticamente idênticas geram o mesmo hash
        - O hash é uma string hexadecimal de 64 caracteres
    """
    _require_imports()

    h1 = compute_config_hash({"b": 2, "a": 1})
    h2 = compute_config_hash({"a": 1, "b": 2})

    assert h1 == h2
    assert isinstance(h1, str)
    assert len(h1) == 64


def test_hash_matches_sha256_of_canonical_json():
    _require_imports()

    cfg = {
        "engine": {"max_workers": 4, "condition_policy": "fail_open"},
        "refinement": {"focus_areas": ["accessibilité", "syntax"]},
    }
    expected = hashlib.sha256(_canonical_json_bytes(cfg)).hexdigest()

    assert compute_config_hash(cfg) == expected
    assert canonical_json(cfg).encode("utf-8") == _canonical_json_bytes(cfg)


def test_hash_changes_on_override():
    _require_imports()

    assert compute_config_hash({"a": 1, "b": 2}) != compute_config_hash({"a": 1, "b": 3})


def test_hash_rejects_non_dict():
    _require_imports()

    with pytest.raises(TypeError):
        compute_config_hash(["engine"])


def test_payload_fingerprint_reports_size_and_digest():
    """O fingerprint descreve o payload inteiro (bytes do JSON canônico + sha256)."""
    _require_imports()

    payload = {"html": "<div>" + "x" * 5000 + "</div>"}
    raw = _canonical_json_bytes(payload)

    fp = payload_fingerprint(payload)

    assert fp == {
        "payload_bytes": len(raw),
        "payload_sha256": hashlib.sha256(raw).hexdigest(),
    }
