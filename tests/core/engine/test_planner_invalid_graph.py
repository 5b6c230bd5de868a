# tests/core/engine/test_planner_invalid_graph.py
"""
Testes de rejeição de DAGs inválidos pelo planner.

Os testes asseguram que:
- ciclos são detectados (CycleDetected com os nós envolvidos)
- dependências inexistentes são rejeitadas
- chaves de nó duplicadas são rejeitadas
- a chave reservada `metrics` é rejeitada
- todos os erros são PlanningError

Limites explícitos:
    - Não valida a ausência de escritas (ver test_scheduler.py)
"""

import pytest

try:
    from templator_flow.core.engine.planner import build_graph, topo_sort, validate_dag
    from templator_flow.core.exceptions import (
        CycleDetected,
        DuplicateNodeKeyError,
        PlanningError,
        ReservedNodeKeyError,
        UnknownDependencyError,
    )
    from templator_flow.core.pipeline.types import DagEdge, DagNode, PipelineDag
except Exception as e:  # noqa: BLE001
    validate_dag = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing planner modules. Implement:\n"
            "- src/templator_flow/core/engine/planner.py\n"
            "- src/templator_flow/core/exceptions.py (PlanningError hierarchy)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def _node(key, **kw):
    return DagNode(key=key, step_version_id=f"sv-{key}", **kw)


def test_cycle_detected_lists_nodes_in_cycle():
    """
    Verifica a detecção de ciclo e o conteúdo de `details`.

    Estrutura:
        start → a → b → a   (ciclo a/b)

    Invariantes:
        - CycleDetected é uma PlanningError
        - `details.nodes_in_cycle` contém exatamente os nós não emitidos
    """
    _require_imports()

    dag = PipelineDag(
        nodes=[_node("start"), _node("a"), _node("b")],
        edges=[DagEdge("start", "a"), DagEdge("a", "b"), DagEdge("b", "a")],
    )

    with pytest.raises(CycleDetected) as exc:
        validate_dag(dag)

    assert isinstance(exc.value, PlanningError)
    assert sorted(exc.value.details["nodes_in_cycle"]) == ["a", "b"]


def test_self_dependency_is_a_cycle():
    _require_imports()

    dag = PipelineDag(nodes=[_node("a", depends_on=["a"])])

    with pytest.raises(CycleDetected):
        topo_sort(build_graph(dag))


def test_unknown_dependency_raises():
    _require_imports()

    dag = PipelineDag(nodes=[_node("a"), _node("b", depends_on=["ghost"])])

    with pytest.raises(UnknownDependencyError) as exc:
        build_graph(dag)

    assert exc.value.details["unknown"] == "ghost"


def test_edge_to_unknown_node_raises():
    _require_imports()

    dag = PipelineDag(nodes=[_node("a")], edges=[DagEdge("a", "ghost")])

    with pytest.raises(UnknownDependencyError):
        build_graph(dag)


def test_duplicate_node_key_raises():
    _require_imports()

    dag = PipelineDag(nodes=[_node("a"), _node("a")])

    with pytest.raises(DuplicateNodeKeyError):
        build_graph(dag)


def test_metrics_node_key_is_reserved():
    _require_imports()

    dag = PipelineDag(nodes=[_node("extract"), _node("metrics", depends_on=["extract"])])

    with pytest.raises(ReservedNodeKeyError) as exc:
        validate_dag(dag)

    assert isinstance(exc.value, PlanningError)
    assert exc.value.details == {"node_key": "metrics"}
