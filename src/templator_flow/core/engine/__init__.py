# src/templator_flow/core/engine/__init__.py
"""
Engine do Templator Flow.

Este pacote contém a implementação responsável por planejar e executar
PipelineVersions registradas no catálogo.

Componentes principais:
    - planner    → build_graph / topo_sort e validações estruturais
    - conditions → gramática restrita de condições de nó
    - runner     → StepRunner (uma tentativa, timeout, finalização)
    - scheduler  → DagScheduler (ondas de nós prontos, retries, cancelamento)

Invariantes:
    - Steps só executam após todas as dependências estarem terminais
    - Toda StepRun planejada termina em estado terminal
    - Erros de planejamento ocorrem antes de qualquer escrita

Limites explícitos:
    - Não define Steps de domínio
    - Não executa em múltiplos nós
"""
