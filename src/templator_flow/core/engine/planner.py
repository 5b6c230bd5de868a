# src/templator_flow/core/engine/planner.py
"""
Planejador de execução do pipeline (DAG).

Este módulo valida a estrutura do DAG armazenado em uma PipelineVersion e
produz uma ordem topológica determinística das chaves de nó.

O planner opera exclusivamente em nível estrutural:
    - chaves de nó duplicadas ou reservadas (`metrics`)
    - arestas e `depends_on` que referenciam nós inexistentes
    - ciclos

Decisões arquiteturais:
    - Predecessores = arestas explícitas ∪ `depends_on` do próprio nó
    - Kahn determinístico: a fila de prontos segue a ordem do grafo
      (declaração, ou `order` quando nenhum nó possui dependências)
    - Erros estruturais são PlanningError e ocorrem antes de qualquer escrita

Invariantes:
    - Nenhum nó aparece antes de seus predecessores
    - Todos os nós aparecem exatamente uma vez
    - A mesma definição produz sempre a mesma ordem

Limites explícitos:
    - Não avalia condições
    - Não executa Steps
    - Não grava telemetria
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from ..exceptions import (
    CycleDetected,
    DuplicateNodeKeyError,
    ReservedNodeKeyError,
    UnknownDependencyError,
)
from ..pipeline.context import METRICS_NAMESPACE
from ..pipeline.types import DagNode, PipelineDag


@dataclass(frozen=True)
class DagGraph:
    """
    Grafo resolvido de um DAG.

    `nodes` preserva a ordem do grafo (declaração ou `order`);
    `predecessors`/`successors` listam chaves sem duplicatas, na ordem do grafo.
    """

    nodes: Dict[str, DagNode] = field(default_factory=dict)
    predecessors: Dict[str, List[str]] = field(default_factory=dict)
    successors: Dict[str, List[str]] = field(default_factory=dict)


def _as_dag(dag: Union[PipelineDag, Dict[str, Any]]) -> PipelineDag:
    if isinstance(dag, PipelineDag):
        return dag
    return PipelineDag.from_dict(dag)


def build_graph(dag: Union[PipelineDag, Dict[str, Any]]) -> DagGraph:
    """
    Constrói o grafo de predecessores de um DAG.

    Raises:
        DuplicateNodeKeyError: Duas definições com a mesma chave.
        ReservedNodeKeyError: Chave `metrics`, reservada no RunContext.
        UnknownDependencyError: Aresta ou `depends_on` com chave inexistente.
    """
    dag = _as_dag(dag)

    nodes: Dict[str, DagNode] = {}
    for node in dag.nodes:
        if not isinstance(node.key, str) or not node.key.strip():
            raise DuplicateNodeKeyError(
                "node.key deve ser string não vazia",
                details={"node": node.to_dict()},
            )
        if node.key in nodes:
            raise DuplicateNodeKeyError(
                f"Chave de nó duplicada: {node.key}",
                details={"node_key": node.key},
            )
        if node.key == METRICS_NAMESPACE:
            raise ReservedNodeKeyError(
                f"Chave de nó reservada: {node.key}",
                details={"node_key": node.key},
                hint="O RunContext expõe métricas em `metrics.<nó>.<métrica>`; renomeie o nó",
            )
        nodes[node.key] = node

    raw_preds: Dict[str, List[str]] = {k: [] for k in nodes}
    for edge in dag.edges:
        for ref in (edge.source, edge.target):
            if ref not in nodes:
                raise UnknownDependencyError(
                    f"Aresta {edge.source} → {edge.target} referencia nó inexistente '{ref}'",
                    details={"from": edge.source, "to": edge.target, "unknown": ref},
                    hint="Verifique as arestas do DAG da PipelineVersion",
                )
        raw_preds[edge.target].append(edge.source)

    for key, node in nodes.items():
        for dep in node.depends_on:
            if dep not in nodes:
                raise UnknownDependencyError(
                    f"Nó '{key}' depende de nó inexistente '{dep}'",
                    details={"node_key": key, "unknown": dep},
                    hint="Verifique `depends_on` do nó",
                )
            raw_preds[key].append(dep)

    if all(not preds for preds in raw_preds.values()):
        # sorted é estável: empates de `order` mantêm a ordem de declaração
        ordered = sorted(
            nodes.values(),
            key=lambda n: n.order if n.order is not None else float("inf"),
        )
        nodes = {n.key: n for n in ordered}

    index = {k: i for i, k in enumerate(nodes)}
    predecessors = {
        k: sorted(set(raw_preds[k]), key=index.__getitem__) for k in nodes
    }
    successors: Dict[str, List[str]] = {k: [] for k in nodes}
    for key in nodes:
        for dep in predecessors[key]:
            successors[dep].append(key)

    return DagGraph(nodes=nodes, predecessors=predecessors, successors=successors)


def topo_sort(graph: DagGraph) -> List[str]:
    """
    Ordenação topológica (Kahn) com fila de prontos na ordem do grafo.

    Raises:
        CycleDetected: Se nem todos os nós puderem ser emitidos.
    """
    index = {k: i for i, k in enumerate(graph.nodes)}
    remaining = {k: len(graph.predecessors[k]) for k in graph.nodes}

    ready: List[str] = [k for k in graph.nodes if remaining[k] == 0]
    order: List[str] = []
    while ready:
        key = ready.pop(0)
        order.append(key)
        for child in graph.successors[key]:
            remaining[child] -= 1
            if remaining[child] == 0:
                ready.append(child)
                ready.sort(key=index.__getitem__)

    if len(order) != len(graph.nodes):
        stuck = [k for k in graph.nodes if k not in order]
        raise CycleDetected(
            "Ciclo detectado no grafo de dependências",
            details={"nodes_in_cycle": stuck},
            hint="Remova a aresta ou `depends_on` que fecha o ciclo",
        )
    return order


def validate_dag(dag: Union[PipelineDag, Dict[str, Any]]) -> List[str]:
    """Atalho usado no registro: valida e devolve a ordem topológica."""
    return topo_sort(build_graph(dag))
