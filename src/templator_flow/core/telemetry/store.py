# src/templator_flow/core/telemetry/store.py
"""
Record store do Templator Flow.

O `RecordStore` é a fronteira de persistência de todo o sistema: catálogo e
telemetria só falam com tabelas lógicas através das operações

    create / get / update / find / upsert (por chave natural)

Implementações (v1):
    - InMemoryRecordStore → testes e execuções efêmeras
    - JsonDirRecordStore  → um arquivo JSON por tabela em um diretório

Decisões:
    - Registros são dicts JSON-serializáveis; o store atribui `id` quando ausente
    - Leituras devolvem cópias; mutações externas não afetam o store
    - `find` preserva a ordem de inserção
    - `upsert` nunca altera um registro existente (idempotência do catálogo)

Limites explícitos:
    - Sem transações entre tabelas
    - Sem índices; `find` é varredura linear
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from ..exceptions import RecordNotFoundError, RecordStoreError


def new_id() -> str:
    return str(uuid.uuid4())


def _matches(record: Dict[str, Any], criteria: Dict[str, Any]) -> bool:
    return all(record.get(k) == v for k, v in criteria.items())


class RecordStore(Protocol):
    def create(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def get(self, table: str, record_id: str) -> Dict[str, Any]:
        ...

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def find(self, table: str, **criteria: Any) -> List[Dict[str, Any]]:
        ...

    def upsert(
        self, table: str, natural_key: Dict[str, Any], record: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], bool]:
        ...


class InMemoryRecordStore:
    """Store em memória, thread-safe, com tabelas criadas sob demanda."""

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def create(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            row = deepcopy(record)
            row.setdefault("id", new_id())
            if row["id"] in rows:
                raise RecordStoreError(
                    f"Registro duplicado em '{table}': {row['id']}",
                    details={"table": table, "id": row["id"]},
                )
            rows[row["id"]] = row
            return deepcopy(row)

    def get(self, table: str, record_id: str) -> Dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFoundError(
                    f"Registro não encontrado em '{table}': {record_id}",
                    details={"table": table, "id": record_id},
                )
            return deepcopy(rows[record_id])

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFoundError(
                    f"Registro não encontrado em '{table}': {record_id}",
                    details={"table": table, "id": record_id},
                )
            rows[record_id].update(deepcopy(changes))
            rows[record_id]["id"] = record_id
            return deepcopy(rows[record_id])

    def find(self, table: str, **criteria: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [deepcopy(r) for r in self._table(table).values() if _matches(r, criteria)]

    def upsert(
        self, table: str, natural_key: Dict[str, Any], record: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], bool]:
        with self._lock:
            existing = self.find(table, **natural_key)
            if existing:
                return existing[0], False
            row = dict(record)
            row.update(natural_key)
            return self.create(table, row), True

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))


class JsonDirRecordStore(InMemoryRecordStore):
    """
    Store persistido em diretório: `<root>/<table>.json` (lista de registros).

    O estado completo de cada tabela é mantido em memória e regravado de
    forma atômica (arquivo temporário + `os.replace`) a cada escrita.
    Se a gravação em disco falha, a alteração em memória é desfeita antes
    de a exceção seguir ao chamador.
    Reabrir o mesmo diretório reconstrói o estado anterior.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        super().__init__()
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        for path in sorted(self.root.glob("*.json")):
            with path.open("r", encoding="utf-8") as f:
                rows = json.load(f)
            self._tables[path.stem] = {r["id"]: r for r in rows}

    def _flush(self, table: str) -> None:
        path = self.root / f"{table}.json"
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(list(self._table(table).values()), f, ensure_ascii=False, indent=2, default=str)
        os.replace(tmp, path)

    def create(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row = super().create(table, record)
            try:
                self._flush(table)
            except Exception:
                del self._table(table)[row["id"]]
                raise
            return row

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            previous = deepcopy(self._table(table).get(record_id))
            row = super().update(table, record_id, changes)
            try:
                self._flush(table)
            except Exception:
                self._table(table)[record_id] = previous
                raise
            return row


def build_store(settings: Any = None) -> RecordStore:
    """
    Constrói o RecordStore configurado em `telemetry`.

    Aceita `TelemetrySettings` (ou qualquer objeto com `store` e `path`);
    `None` produz um store em memória.
    """
    kind: Optional[str] = getattr(settings, "store", None) or "memory"
    if kind == "memory":
        return InMemoryRecordStore()
    if kind == "json":
        path = getattr(settings, "path", None)
        if not path:
            raise RecordStoreError("telemetry.path é obrigatório para o store json")
        return JsonDirRecordStore(path)
    raise RecordStoreError(f"Store de telemetria desconhecido: {kind}", details={"store": kind})
