# tests/core/config/test_settings.py
"""
Testes dos settings tipados (`resolve_settings`).

Os testes asseguram que:
- a configuração vazia produz os defaults canônicos
- overrides parciais são aplicados sobre `DEFAULT_CONFIG`
- valores fora do domínio geram `InvalidSettingError`
- o store de telemetria configurado é construído corretamente

Limites explícitos:
    - Não valida carregamento de arquivos (ver test_loader.py)
"""

import pytest

try:
    from templator_flow.core.config.errors import InvalidSettingError
    from templator_flow.core.config.settings import (
        DEFAULT_CONFIG,
        EngineSettings,
        FlowSettings,
        resolve_settings,
    )
    from templator_flow.core.telemetry.store import (
        InMemoryRecordStore,
        JsonDirRecordStore,
        build_store,
    )
    from templator_flow.refinement.types import RefinementConfig
except Exception as e:  # noqa: BLE001
    resolve_settings = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing settings modules. Implement:\n"
            "- src/templator_flow/core/config/settings.py (resolve_settings)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_empty_config_yields_defaults():
    """
    Verifica que `resolve_settings(None)` devolve exatamente os defaults.

    Invariantes:
        - EngineSettings default: 4 workers, fail_open, 0 retries, sem timeout
        - Refinement default: 3 iterações, threshold 85, melhoria 10
        - Telemetria default: store em memória
        - `raw` contém a configuração efetiva completa
    """
    _require_imports()

    settings = resolve_settings()

    assert isinstance(settings, FlowSettings)
    assert settings.engine == EngineSettings()
    assert settings.refinement.max_iterations == 3
    assert settings.refinement.confidence_threshold == 85.0
    assert settings.refinement.improvement_threshold == 10.0
    assert settings.refinement.focus_areas == ()
    assert settings.telemetry.store == "memory"
    assert settings.raw == DEFAULT_CONFIG


def test_partial_override_is_merged_over_defaults(flow_local_yaml):
    _require_imports()
    from templator_flow.core.config.loader import load_config_text

    settings = resolve_settings(load_config_text(flow_local_yaml))

    assert settings.engine.max_workers == 2
    assert settings.engine.condition_policy == "fail_open"
    assert settings.refinement.focus_areas == ("performance", "syntax")


def test_refinement_config_from_settings():
    _require_imports()

    settings = resolve_settings({"refinement": {"max_iterations": 5, "focus_areas": ["syntax"]}})
    cfg = RefinementConfig.from_settings(settings.refinement)

    assert cfg.max_iterations == 5
    assert cfg.confidence_threshold == 85.0
    assert cfg.focus_areas == ["syntax"]


@pytest.mark.parametrize(
    "config",
    [
        {"engine": {"max_workers": 0}},
        {"engine": {"condition_policy": "maybe"}},
        {"engine": {"default_retries": -1}},
        {"refinement": {"max_iterations": 0}},
        {"telemetry": {"store": "postgres"}},
        {"telemetry": {"store": "json"}},
    ],
)
def test_out_of_domain_values_raise(config):
    """Valores fora do domínio aceito são rejeitados na resolução."""
    _require_imports()

    with pytest.raises(InvalidSettingError):
        resolve_settings(config)


def test_build_store_from_settings(tmp_path):
    _require_imports()

    memory = build_store(resolve_settings().telemetry)
    json_store = build_store(
        resolve_settings({"telemetry": {"store": "json", "path": str(tmp_path / "runs")}}).telemetry
    )

    assert isinstance(memory, InMemoryRecordStore)
    assert isinstance(json_store, JsonDirRecordStore)
    assert (tmp_path / "runs").is_dir()
