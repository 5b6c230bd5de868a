# src/templator_flow/core/catalog/catalog.py
"""
PipelineCatalog: registro idempotente de pipelines e Steps versionados.

O catálogo é a única forma de criar PipelineDefinitions, PipelineVersions,
StepDefinitions e StepVersions. Todas as linhas são localizadas por chave
natural:

    PipelineDefinition → name
    StepDefinition     → key
    StepVersion        → (step_id, version)
    PipelineVersion    → (pipeline_id, version)

Decisões arquiteturais:
    - `ensure` valida o DAG completo antes de gravar qualquer linha
    - Chamadas repetidas com os mesmos argumentos devolvem os mesmos ids
      e não criam duplicatas
    - Linhas são imutáveis após criadas; apenas `is_active` muda, via
      `activate_version`
    - Reutilizar a versão de um pipeline com DAG/config diferentes é erro
      (CatalogError): uma nova versão deve ser registrada

Limites explícitos:
    - Não executa pipelines
    - Não registra executores (papel do ExecutorRegistry)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..engine.planner import validate_dag
from ..exceptions import CatalogError, PipelineVersionNotFound, UnknownStepVersionError
from ..pipeline.types import DagEdge, DagNode, PipelineDag
from ..telemetry.models import (
    PipelineDefinition,
    PipelineVersion,
    StepDefinition,
    StepVersion,
    utc_now_iso,
)
from ..telemetry.store import RecordStore

EdgeLike = Union[Tuple[str, str], Dict[str, Any], DagEdge]


@dataclass(frozen=True)
class StepSpec:
    """
    Declaração de um Step dentro de um pipeline.

    `key`/`version` identificam o Step no catálogo; os demais campos de
    política são copiados para o nó do DAG. `node_key` permite usar o mesmo
    Step mais de uma vez no mesmo pipeline (default: `key`).
    """

    key: str
    version: str = "1.0.0"
    name: str = ""
    description: str = ""
    default_config: Dict[str, Any] = field(default_factory=dict)
    node_key: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    condition: Optional[str] = None
    continue_on_fail: bool = False
    retries: Optional[int] = None
    timeout_ms: Optional[int] = None
    parallel_group: Optional[str] = None

    @property
    def resolved_node_key(self) -> str:
        return self.node_key or self.key


@dataclass(frozen=True)
class EnsureResult:
    pipeline_version_id: str
    step_version_by_key: Dict[str, str]
    pipeline_id: str = ""


def _to_edge(edge: EdgeLike) -> DagEdge:
    if isinstance(edge, DagEdge):
        return edge
    if isinstance(edge, dict):
        return DagEdge.from_dict(edge)
    source, target = edge
    return DagEdge(source=source, target=target)


class PipelineCatalog:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Registro
    # ------------------------------------------------------------------
    def ensure(
        self,
        pipeline_name: str,
        version: str,
        steps: Sequence[StepSpec],
        *,
        description: str = "",
        edges: Optional[Iterable[EdgeLike]] = None,
        config: Optional[Dict[str, Any]] = None,
        activate: bool = True,
    ) -> EnsureResult:
        """
        Garante a existência do pipeline, de seus Steps e da versão informada.

        Args:
            pipeline_name: Nome único do pipeline.
            version: Versão do pipeline (ex.: "1.0.0").
            steps: Steps na ordem do pipeline.
            edges: Arestas explícitas; quando omitidas e nenhum Step declara
                `depends_on`, cada Step aponta para o seguinte (`next`).
            config: Configuração da versão (gravada na PipelineVersion).
            activate: Torna esta versão a ativa do pipeline.

        Raises:
            CatalogError: Entrada inválida ou versão existente divergente.
            PlanningError: DAG inválido (dependência inexistente, ciclo).
        """
        if not pipeline_name or not str(pipeline_name).strip():
            raise CatalogError("pipeline_name deve ser string não vazia")
        if not version or not str(version).strip():
            raise CatalogError("version deve ser string não vazia")
        steps = list(steps)
        if not steps:
            raise CatalogError(
                f"Pipeline '{pipeline_name}' sem Steps",
                details={"pipeline_name": pipeline_name, "version": version},
            )
        self._check_step_specs(steps)
        edges = list(edges) if edges is not None else None

        # validação estrutural antes de qualquer escrita
        draft = self._build_dag(steps, edges, {s.key: s.key for s in steps})
        validate_dag(draft)
        config = dict(config or {})
        self._check_existing_version(pipeline_name, version, steps, edges, config)

        pipeline_row, _ = self.store.upsert(
            PipelineDefinition.TABLE,
            {"name": pipeline_name},
            {"description": description, "created_at": utc_now_iso()},
        )

        step_version_by_key: Dict[str, str] = {}
        for spec in steps:
            if spec.key in step_version_by_key:
                continue
            step_row, _ = self.store.upsert(
                StepDefinition.TABLE,
                {"key": spec.key},
                {
                    "name": spec.name or spec.key,
                    "description": spec.description,
                    "created_at": utc_now_iso(),
                },
            )
            sv_row, _ = self.store.upsert(
                StepVersion.TABLE,
                {"step_id": step_row["id"], "version": spec.version},
                {
                    "is_active": True,
                    "default_config": dict(spec.default_config),
                    "created_at": utc_now_iso(),
                },
            )
            step_version_by_key[spec.key] = sv_row["id"]

        dag = self._build_dag(steps, edges, step_version_by_key)
        pv_row, _ = self.store.upsert(
            PipelineVersion.TABLE,
            {"pipeline_id": pipeline_row["id"], "version": version},
            {
                "dag": dag.to_dict(),
                "config": config,
                "is_active": False,
                "created_at": utc_now_iso(),
            },
        )

        if activate and not pv_row.get("is_active"):
            self.activate_version(pipeline_name, version)

        return EnsureResult(
            pipeline_version_id=pv_row["id"],
            step_version_by_key=step_version_by_key,
            pipeline_id=pipeline_row["id"],
        )

    def activate_version(self, pipeline_name: str, version: str) -> PipelineVersion:
        """Ativa `version` e desativa as demais versões do pipeline."""
        pipeline = self._pipeline_by_name(pipeline_name)
        target = self.store.find(PipelineVersion.TABLE, pipeline_id=pipeline["id"], version=version)
        if not target:
            raise PipelineVersionNotFound(
                f"Versão '{version}' do pipeline '{pipeline_name}' não registrada",
                details={"pipeline_name": pipeline_name, "version": version},
            )
        for row in self.store.find(PipelineVersion.TABLE, pipeline_id=pipeline["id"], is_active=True):
            if row["id"] != target[0]["id"]:
                self.store.update(PipelineVersion.TABLE, row["id"], {"is_active": False})
        if target[0].get("is_active"):
            return PipelineVersion.from_dict(target[0])
        return PipelineVersion.from_dict(
            self.store.update(PipelineVersion.TABLE, target[0]["id"], {"is_active": True})
        )

    # ------------------------------------------------------------------
    # Consulta
    # ------------------------------------------------------------------
    def get_version(self, pipeline_version_id: str) -> PipelineVersion:
        rows = self.store.find(PipelineVersion.TABLE, id=pipeline_version_id)
        if not rows:
            raise PipelineVersionNotFound(
                f"PipelineVersion não encontrada: {pipeline_version_id}",
                details={"pipeline_version_id": pipeline_version_id},
            )
        return PipelineVersion.from_dict(rows[0])

    def get_active_version(self, pipeline_name: str) -> PipelineVersion:
        pipeline = self._pipeline_by_name(pipeline_name)
        rows = self.store.find(PipelineVersion.TABLE, pipeline_id=pipeline["id"], is_active=True)
        if not rows:
            raise PipelineVersionNotFound(
                f"Pipeline '{pipeline_name}' não possui versão ativa",
                details={"pipeline_name": pipeline_name},
            )
        return PipelineVersion.from_dict(rows[0])

    def get_step_version(self, step_version_id: str) -> StepVersion:
        rows = self.store.find(StepVersion.TABLE, id=step_version_id)
        if not rows:
            raise UnknownStepVersionError(
                f"StepVersion não registrada: {step_version_id}",
                details={"step_version_id": step_version_id},
            )
        return StepVersion.from_dict(rows[0])

    def step_key_for(self, step_version_id: str) -> str:
        """Resolve StepVersion → StepDefinition.key."""
        sv = self.get_step_version(step_version_id)
        rows = self.store.find(StepDefinition.TABLE, id=sv.step_id)
        if not rows:
            raise UnknownStepVersionError(
                f"StepDefinition ausente para a StepVersion {step_version_id}",
                details={"step_version_id": step_version_id, "step_id": sv.step_id},
            )
        return rows[0]["key"]

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------
    def _pipeline_by_name(self, pipeline_name: str) -> Dict[str, Any]:
        rows = self.store.find(PipelineDefinition.TABLE, name=pipeline_name)
        if not rows:
            raise PipelineVersionNotFound(
                f"Pipeline não registrado: {pipeline_name}",
                details={"pipeline_name": pipeline_name},
            )
        return rows[0]

    @staticmethod
    def _check_step_specs(steps: List[StepSpec]) -> None:
        versions: Dict[str, str] = {}
        for spec in steps:
            if not spec.key or not spec.key.strip():
                raise CatalogError("StepSpec.key deve ser string não vazia")
            known = versions.setdefault(spec.key, spec.version)
            if known != spec.version:
                raise CatalogError(
                    f"Step '{spec.key}' declarado com versões diferentes no mesmo pipeline",
                    details={"step_key": spec.key, "versions": [known, spec.version]},
                )

    def _check_existing_version(
        self,
        pipeline_name: str,
        version: str,
        steps: List[StepSpec],
        edges: Optional[Iterable[EdgeLike]],
        config: Dict[str, Any],
    ) -> None:
        pipelines = self.store.find(PipelineDefinition.TABLE, name=pipeline_name)
        if not pipelines:
            return
        existing = self.store.find(
            PipelineVersion.TABLE, pipeline_id=pipelines[0]["id"], version=version
        )
        if not existing:
            return

        # compara estrutura com ids de StepVersion neutralizados
        stored = PipelineDag.from_dict(existing[0]["dag"])
        stored_shape = [(n.key, n.to_dict()) for n in stored.nodes]
        incoming = self._build_dag(steps, edges, {s.key: "" for s in steps})
        incoming_shape = [(n.key, n.to_dict()) for n in incoming.nodes]
        for _, d in stored_shape + incoming_shape:
            d.pop("step_version_id")

        if (
            stored_shape != incoming_shape
            or stored.to_dict()["edges"] != incoming.to_dict()["edges"]
            or existing[0].get("config", {}) != config
        ):
            raise CatalogError(
                f"Versão '{version}' do pipeline '{pipeline_name}' já existe com outro DAG/config",
                details={"pipeline_name": pipeline_name, "version": version},
                hint="Registre uma nova versão; versões são imutáveis",
            )

    @staticmethod
    def _build_dag(
        steps: List[StepSpec],
        edges: Optional[Iterable[EdgeLike]],
        step_version_by_key: Dict[str, str],
    ) -> PipelineDag:
        nodes = [
            DagNode(
                key=spec.resolved_node_key,
                step_version_id=step_version_by_key[spec.key],
                params=dict(spec.params),
                depends_on=list(spec.depends_on),
                condition=spec.condition,
                continue_on_fail=spec.continue_on_fail,
                retries=spec.retries,
                timeout_ms=spec.timeout_ms,
                parallel_group=spec.parallel_group,
                order=i,
            )
            for i, spec in enumerate(steps)
        ]

        if edges is not None:
            dag_edges = [_to_edge(e) for e in edges]
        elif any(spec.depends_on for spec in steps):
            dag_edges = []
        else:
            dag_edges = [
                DagEdge(source=a.key, target=b.key, kind="next")
                for a, b in zip(nodes, nodes[1:])
            ]
        return PipelineDag(nodes=nodes, edges=dag_edges)
