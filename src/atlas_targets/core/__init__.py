# src/atlas_targets/core/__init__.py
"""
Core do Atlas Targets.

Implementação canônica do engine: compilação do plano, grafo de
dependências, cache, expansão dinâmica, scheduler e rastreabilidade.

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo comportamento é explícito e testado
    - Estado persistido só muda por `run()` (escrita) e `clean()` (purga)
    - Falhas são artefatos de domínio (AtlasErrorPayload), não stack traces
"""
