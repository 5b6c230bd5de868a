# tests/core/telemetry/test_store.py
"""
Testes dos RecordStores (memória e diretório JSON).

Invariantes:
    - `create` atribui `id` quando ausente
    - Leituras devolvem cópias
    - `find` preserva a ordem de inserção
    - `upsert` nunca altera um registro existente
    - JsonDirRecordStore reconstrói o estado ao reabrir o diretório
"""

import json

import pytest

try:
    from templator_flow.core.exceptions import RecordNotFoundError, RecordStoreError
    from templator_flow.core.telemetry.store import InMemoryRecordStore, JsonDirRecordStore
except Exception as e:  # noqa: BLE001
    InMemoryRecordStore = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing record store. Implement:\n"
            "- src/templator_flow/core/telemetry/store.py\n"
            f"Import error: {_IMPORT_ERR}"
        )


@pytest.fixture(params=["memory", "json"])
def any_store(request, tmp_path):
    _require_imports()
    if request.param == "memory":
        return InMemoryRecordStore()
    return JsonDirRecordStore(tmp_path / "records")


def test_create_get_update_find(any_store):
    row = any_store.create("step_runs", {"node_key": "a", "status": "queued"})
    other = any_store.create("step_runs", {"node_key": "b", "status": "queued"})

    assert row["id"]
    assert any_store.get("step_runs", row["id"])["node_key"] == "a"

    updated = any_store.update("step_runs", row["id"], {"status": "running"})
    assert updated["status"] == "running"
    assert updated["id"] == row["id"]

    assert [r["id"] for r in any_store.find("step_runs")] == [row["id"], other["id"]]
    assert [r["node_key"] for r in any_store.find("step_runs", status="queued")] == ["b"]


def test_reads_are_copies(any_store):
    row = any_store.create("pipeline_runs", {"summary": {"plan": ["a"]}})

    fetched = any_store.get("pipeline_runs", row["id"])
    fetched["summary"]["plan"].append("b")

    assert any_store.get("pipeline_runs", row["id"])["summary"]["plan"] == ["a"]


def test_missing_record_raises(any_store):
    with pytest.raises(RecordNotFoundError):
        any_store.get("step_runs", "nope")
    with pytest.raises(RecordNotFoundError):
        any_store.update("step_runs", "nope", {"status": "failed"})


def test_duplicate_id_raises(any_store):
    any_store.create("step_runs", {"id": "fixed"})

    with pytest.raises(RecordStoreError):
        any_store.create("step_runs", {"id": "fixed"})


def test_upsert_is_idempotent_and_never_overwrites(any_store):
    """
    Verifica o contrato de `upsert` por chave natural.

    Invariantes:
        - Primeira chamada cria (created=True) com a chave natural mesclada
        - Chamadas seguintes devolvem a mesma linha sem alterá-la
    """
    first, created = any_store.upsert("step_definitions", {"key": "vision.extract"}, {"name": "Extract"})
    again, created_again = any_store.upsert("step_definitions", {"key": "vision.extract"}, {"name": "Other"})

    assert created is True
    assert created_again is False
    assert again["id"] == first["id"]
    assert again["name"] == "Extract"
    assert len(any_store.find("step_definitions")) == 1


def test_json_store_survives_reopen(tmp_path):
    _require_imports()
    root = tmp_path / "records"

    store = JsonDirRecordStore(root)
    row = store.create("pipeline_runs", {"status": "initializing"})
    store.update("pipeline_runs", row["id"], {"status": "running"})

    reopened = JsonDirRecordStore(root)

    assert reopened.get("pipeline_runs", row["id"])["status"] == "running"
    with (root / "pipeline_runs.json").open(encoding="utf-8") as f:
        assert json.load(f)[0]["id"] == row["id"]
    assert not list(root.glob("*.tmp"))


def test_json_store_rolls_back_memory_when_flush_fails(tmp_path, monkeypatch):
    """
    Uma escrita cuja gravação em disco falha não deixa rastro.

    Invariantes:
        - `create` falho: a linha não é visível em `get`/`find` nem em disco
        - `update` falho: o valor anterior é restaurado
        - A próxima escrita bem-sucedida não grava a alteração descartada
    """
    _require_imports()
    root = tmp_path / "records"
    store = JsonDirRecordStore(root)
    kept = store.create("pipeline_runs", {"status": "initializing"})

    def broken_flush(table):
        raise OSError("disk full")

    monkeypatch.setattr(store, "_flush", broken_flush)

    with pytest.raises(OSError):
        store.create("pipeline_runs", {"id": "lost", "status": "running"})
    with pytest.raises(OSError):
        store.update("pipeline_runs", kept["id"], {"status": "running"})

    with pytest.raises(RecordNotFoundError):
        store.get("pipeline_runs", "lost")
    assert [r["id"] for r in store.find("pipeline_runs")] == [kept["id"]]
    assert store.get("pipeline_runs", kept["id"])["status"] == "initializing"

    monkeypatch.undo()
    store.create("pipeline_runs", {"id": "next", "status": "initializing"})

    reopened = JsonDirRecordStore(root)
    assert sorted(r["id"] for r in reopened.find("pipeline_runs")) == sorted([kept["id"], "next"])
    assert reopened.get("pipeline_runs", kept["id"])["status"] == "initializing"


def test_in_memory_count():
    _require_imports()
    store = InMemoryRecordStore()

    store.create("metric_results", {"metric_key": "a"})
    store.create("metric_results", {"metric_key": "b"})

    assert store.count("metric_results") == 2
    assert store.count("ir_artifacts") == 0
