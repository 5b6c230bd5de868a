# tests/core/pipeline/test_executor_registry.py
"""
Testes do ExecutorRegistry.

Invariantes:
    - Cada chave de Step possui no máximo um executor
    - A ordem de registro é preservada
    - Chave ausente gera MissingExecutorError (PlanningError)
"""

import pytest

try:
    from templator_flow.core.exceptions import MissingExecutorError, PlanningError
    from templator_flow.core.pipeline.registry import (
        DuplicateExecutorError,
        ExecutorRegistry,
    )
except Exception as e:  # noqa: BLE001
    ExecutorRegistry = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing executor registry. Implement:\n"
            "- src/templator_flow/core/pipeline/registry.py (ExecutorRegistry)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def _noop(params, ctx):
    return None


def test_register_and_get_preserves_order():
    _require_imports()

    reg = ExecutorRegistry.from_mapping({"vision.extract": _noop, "template.generate": _noop})
    reg.register("template.validate", _noop)

    assert reg.keys() == ["vision.extract", "template.generate", "template.validate"]
    assert reg.has("template.generate")
    assert reg.get("template.validate") is _noop


def test_duplicate_key_raises():
    """Registrar duas funções para a mesma chave é erro explícito."""
    _require_imports()

    reg = ExecutorRegistry()
    reg.register("vision.extract", _noop)

    with pytest.raises(DuplicateExecutorError):
        reg.register("vision.extract", _noop)


def test_missing_executor_is_planning_error():
    _require_imports()

    reg = ExecutorRegistry.from_mapping({"vision.extract": _noop})

    with pytest.raises(MissingExecutorError) as exc:
        reg.get("template.generate")

    assert isinstance(exc.value, PlanningError)
    assert exc.value.details["step_key"] == "template.generate"
    assert exc.value.details["registered"] == ["vision.extract"]


@pytest.mark.parametrize("key,fn,err", [("", _noop, ValueError), ("x", "not callable", TypeError)])
def test_invalid_registration_rejected(key, fn, err):
    _require_imports()

    with pytest.raises(err):
        ExecutorRegistry().register(key, fn)
