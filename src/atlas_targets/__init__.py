# src/atlas_targets/__init__.py
"""
Atlas Targets — engine incremental de targets com branching dinâmico.

Usuários declaram targets nomeados (comando + dependências); o engine
compila o plano em um grafo de dependências, decide o que está
desatualizado por fingerprint, executa apenas o necessário sob
paralelismo limitado e guarda os resultados em cache para reuso.

Arquitetura em alto nível:
    - core.plan         → declaração, compilação e carregamento de planos
    - core.graph        → grafo de dependências e máquina de estados
    - core.cache        → fingerprints e cache store endereçado por conteúdo
    - core.dynamic      → expansão map / cross / group e agregação
    - core.engine       → scheduler, relatório de run e staleness
    - core.traceability → Manifest de runs e Trace Store
    - core.config       → carregamento, merge e hashing de configuração

Limites explícitos:
    - Não renderiza grafos nem relatórios
    - Não executa em múltiplas máquinas
"""

from .api import ATLAS_VERSION, Workspace, open_workspace
from .core.engine.report import RunReport, TargetOutcome
from .core.exceptions import (
    AtlasException,
    CacheCorruptionError,
    CompileError,
    CycleDetectedError,
    DuplicateTargetError,
    ExecutionError,
    ExpansionError,
    InvalidPlanError,
    TargetNotBuiltError,
    UnknownReferenceError,
    UnsupportedOperationError,
)
from .core.plan import (
    Command,
    DynamicOp,
    TargetStatus,
    compile_plan,
    cross_over,
    group_by,
    load_plan,
    map_over,
    target,
)
from .core.values import register_adapter

__version__ = ATLAS_VERSION

__all__ = [
    "AtlasException",
    "CacheCorruptionError",
    "Command",
    "CompileError",
    "CycleDetectedError",
    "DuplicateTargetError",
    "DynamicOp",
    "ExecutionError",
    "ExpansionError",
    "InvalidPlanError",
    "RunReport",
    "TargetNotBuiltError",
    "TargetOutcome",
    "TargetStatus",
    "UnknownReferenceError",
    "UnsupportedOperationError",
    "Workspace",
    "compile_plan",
    "cross_over",
    "group_by",
    "load_plan",
    "map_over",
    "open_workspace",
    "register_adapter",
    "target",
]
