# tests/core/config/test_merge.py
"""
Testes da política de deep-merge de configuração.

Este módulo valida o comportamento da função `deep_merge`, responsável
por resolver a configuração final do Templator Flow a partir de uma
configuração base (defaults) e um conjunto de overrides explícitos.

Os testes asseguram que:
- valores escalares são sobrescritos corretamente
- dicionários são mesclados de forma recursiva
- listas são sobrescritas integralmente
- `None` é tratado como valor ausente
- conflitos de tipo são rejeitados explicitamente

Limites explícitos:
    - Não valida carregamento de arquivos YAML
    - Não valida settings tipados
"""

import pytest

try:
    from templator_flow.core.config.errors import ConfigTypeConflictError
    from templator_flow.core.config.merge import deep_merge
except Exception as e:  # noqa: BLE001
    deep_merge = None
    ConfigTypeConflictError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing config merge modules. Implement:\n"
            "- src/templator_flow/core/config/merge.py (deep_merge)\n"
            "- src/templator_flow/core/config/errors.py (ConfigTypeConflictError)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_merge_simple_override_does_not_mutate_inputs():
    """
    Verifica o override de escalares sem efeitos colaterais.

    Invariantes:
        - O valor sobrescrito reflete exatamente o override
        - Chaves não sobrescritas permanecem inalteradas
        - `base` e `override` não sofrem mutação
    """
    _require_imports()

    base = {"a": 1, "b": 2}
    override = {"b": 99}

    out = deep_merge(base, override)

    assert out == {"a": 1, "b": 99}
    assert base == {"a": 1, "b": 2}
    assert override == {"b": 99}


def test_merge_nested_dict():
    _require_imports()

    base = {"engine": {"max_workers": 4, "condition_policy": "fail_open"}}
    override = {"engine": {"max_workers": 2}}

    out = deep_merge(base, override)

    assert out == {"engine": {"max_workers": 2, "condition_policy": "fail_open"}}


def test_merge_list_override_total():
    """Listas são substituídas integralmente, nunca mescladas elemento a elemento."""
    _require_imports()

    base = {"refinement": {"focus_areas": ["accessibility", "syntax"]}}
    override = {"refinement": {"focus_areas": ["performance"]}}

    out = deep_merge(base, override)

    assert out["refinement"]["focus_areas"] == ["performance"]


def test_merge_none_is_treated_as_absent_value():
    """
    Verifica a política de `None` no merge.

    Decisões arquiteturais:
        - Override `None` limpa a chave (ex.: `default_timeout_ms: null`)
        - Base `None` aceita qualquer tipo vindo do override
    """
    _require_imports()

    cleared = deep_merge({"engine": {"default_timeout_ms": 500}}, {"engine": {"default_timeout_ms": None}})
    filled = deep_merge({"telemetry": {"path": None}}, {"telemetry": {"path": "/tmp/runs"}})

    assert cleared["engine"]["default_timeout_ms"] is None
    assert filled["telemetry"]["path"] == "/tmp/runs"


def test_merge_int_and_float_are_compatible():
    _require_imports()

    out = deep_merge({"refinement": {"confidence_threshold": 85}}, {"refinement": {"confidence_threshold": 72.5}})

    assert out["refinement"]["confidence_threshold"] == 72.5


@pytest.mark.parametrize(
    "base,override",
    [
        ({"engine": {"max_workers": 4}}, {"engine": "DEBUG"}),
        ({"engine": {"max_workers": 4}}, {"engine": {"max_workers": "four"}}),
        ({"engine": {"max_workers": 4}}, {"engine": {"max_workers": True}}),
    ],
)
def test_merge_type_conflict_raises(base, override):
    """
    Conflitos de tipo são erro estrutural (inclusive bool sobre número).
    """
    _require_imports()

    with pytest.raises(ConfigTypeConflictError):
        deep_merge(base, override)
