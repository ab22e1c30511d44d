"""
Relatório de staleness sem execução.

Percorre o plano em ordem topológica usando apenas valores do cache:
recalcula fingerprints de targets estáticos, reexpande targets dinâmicos
sobre os valores cacheados e compara com as entradas persistidas.

Um target é desatualizado quando:
    - não possui entrada válida (ausente, ilegível ou pendente)
    - seu fingerprint difere do persistido
    - (dinâmico) a lista de sub-targets mudou ou algum sub-target mudou
    - alguma dependência está desatualizada
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from atlas_targets.core.cache.fingerprint import aggregate_digest, compute_fingerprint
from atlas_targets.core.cache.store import PENDING_FINGERPRINT, CacheEntry, CacheStore
from atlas_targets.core.dynamic.aggregate import aggregate
from atlas_targets.core.dynamic.expander import Upstream, expand
from atlas_targets.core.exceptions import AtlasException, CacheCorruptionError
from atlas_targets.core.plan.compiler import CompiledPlan


def _lookup(store: CacheStore, name: str) -> Optional[CacheEntry]:
    try:
        return store.lookup(name)
    except CacheCorruptionError:
        return None


def load_upstream(store: CacheStore, name: str) -> Optional[Upstream]:
    """Reconstrói o valor resolvido de `name` a partir do cache (ou None)."""
    entry = _lookup(store, name)
    if entry is None or entry.fingerprint == PENDING_FINGERPRINT:
        return None

    if entry.kind != "dynamic":
        return Upstream(value=store.load_value(entry), digest=entry.value_digest)

    branches = []
    for child in entry.children:
        child_entry = _lookup(store, child)
        if child_entry is None:
            return None
        branches.append((child, store.load_value(child_entry), child_entry.value_digest))
    value = aggregate(name, [v for _, v, _ in branches])
    return Upstream(value=value, digest=aggregate_digest([d for _, _, d in branches]), branches=tuple(branches))


def _is_current(plan: CompiledPlan, store: CacheStore, name: str, resolved: Dict[str, Upstream], run_cap: Any) -> bool:
    decl = plan.get(name)
    entry = _lookup(store, name)
    if entry is None:
        return False

    if decl.dynamic is None:
        deps = {r: resolved[r].digest for r in decl.command.refs}
        return entry.fingerprint == compute_fingerprint(command=decl.command, deps=deps)

    expansion = expand(decl, {d: resolved[d] for d in plan.deps[name]}, run_cap=run_cap)
    if entry.fingerprint == PENDING_FINGERPRINT or list(entry.children) != expansion.names:
        return False
    for child in expansion.children:
        child_entry = _lookup(store, child.name)
        fingerprint = compute_fingerprint(command=decl.command, deps=child.deps, extra=child.extra)
        if child_entry is None or child_entry.fingerprint != fingerprint:
            return False
    return True


def outdated_targets(plan: CompiledPlan, store: CacheStore, *, max_expand: Any = None) -> List[str]:
    """Targets do plano que seriam (re)construídos, em ordem topológica."""
    stale: Set[str] = set()
    resolved: Dict[str, Upstream] = {}

    for name in plan.order:
        deps = plan.deps[name]
        if any(d in stale or d not in resolved for d in deps):
            stale.add(name)
            continue
        try:
            upstream = load_upstream(store, name) if _is_current(plan, store, name, resolved, max_expand) else None
        except (AtlasException, OSError):
            upstream = None
        if upstream is None:
            stale.add(name)
        else:
            resolved[name] = upstream

    return [n for n in plan.order if n in stale]
