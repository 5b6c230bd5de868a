# src/templator_flow/core/__init__.py
"""
Core do Templator Flow.

Este pacote reúne as responsabilidades essenciais de planejamento,
execução e rastreabilidade de pipelines versionados.

Componentes principais:
    - config     → resolução de configuração (merge, hashing, settings)
    - pipeline   → tipos canônicos, RunContext e registry de executores
    - catalog    → registro idempotente de definições e versões
    - engine     → planner, condições, StepRunner e DagScheduler
    - telemetry  → persistência append-only de runs, Steps, IR e métricas

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo comportamento é explícito e testado
    - Colaboradores são injetados na construção, nunca buscados globalmente
    - Todo estado de execução é reconstruível a partir dos registros gravados

Limites explícitos:
    - Não contém lógica de domínio específica
    - Não depende de HTTP, CLI ou serviços externos
"""
