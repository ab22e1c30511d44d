"""
Pacote de rastreabilidade do Atlas Targets.

API pública exposta:
    - AtlasManifest     → estrutura canônica do Manifest de uma run
    - create_manifest   → criação explícita do Manifest
    - add_event         → registro explícito de eventos no Event Log
    - target_*          → transições de targets registradas no Manifest
    - save_manifest     → persistência do Manifest em JSON
    - load_manifest     → restauração determinística do Manifest
    - TraceStore        → índice de traces por sub-target

Decisões arquiteturais:
    - Nenhum evento é emitido implicitamente
    - A ordem do Event Log reflete a ordem de chamada
"""

from .manifest import (
    AtlasManifest,
    add_event,
    cache_warning,
    create_manifest,
    load_manifest,
    save_manifest,
    target_blocked,
    target_expanded,
    target_failed,
    target_finished,
    target_started,
)
from .trace_store import TraceStore

__all__ = [
    "AtlasManifest",
    "TraceStore",
    "add_event",
    "cache_warning",
    "create_manifest",
    "load_manifest",
    "save_manifest",
    "target_blocked",
    "target_expanded",
    "target_failed",
    "target_finished",
    "target_started",
]
