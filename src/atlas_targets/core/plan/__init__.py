# src/atlas_targets/core/plan/__init__.py

"""
Modelo de plano e Plan Compiler.

Responsabilidades do pacote:
    - Declaração de targets e specs dinâmicas
    - Representação de comandos para fingerprint
    - Validação estrutural e ordenação topológica
    - Carregamento de planos declarativos (YAML/JSON)
"""

from .command import Command
from .compiler import CompiledPlan, compile_plan, normalize_record
from .loader import load_plan
from .registry import TargetRegistry
from .types import (
    DynamicOp,
    DynamicSpec,
    TargetDecl,
    TargetKind,
    TargetStatus,
    cross_over,
    group_by,
    map_over,
    target,
)

__all__ = [
    "Command",
    "CompiledPlan",
    "DynamicOp",
    "DynamicSpec",
    "TargetDecl",
    "TargetKind",
    "TargetRegistry",
    "TargetStatus",
    "compile_plan",
    "cross_over",
    "group_by",
    "load_plan",
    "map_over",
    "normalize_record",
    "target",
]
