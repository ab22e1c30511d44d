# src/atlas_targets/core/engine/scheduler.py
"""
Scheduler / Executor do Atlas Targets.

Um único loop coordenador decide o que executar; um pool fixo de `jobs`
threads executa os comandos como unidades opacas e síncronas.

Loop:
    1. propaga `blocked` para dependentes de targets em falha
    2. para cada target pronto (dependências terminais com sucesso):
        - dinâmico ainda não expandido → expande e insere sub-targets
        - dinâmico expandido           → agrega e resolve o pai
        - estático / sub-target        → fingerprint + lookup no cache;
                                         hit → up_to_date, miss → pool
    3. sem progresso possível: bloqueia em `wait(FIRST_COMPLETED)` e
       processa as conclusões

Máquina de estados (via `DependencyGraph.transition`):
    not_built → running → {up_to_date | built | errored}
    not_built → {up_to_date | blocked | errored}

Decisões arquiteturais:
    - Apenas o coordenador muta status e escreve no cache; transição e
      commit acontecem juntos sob o lock do grafo (no máximo uma execução
      por target por run)
    - Falhas não abortam a run: o target vai para `errored`, dependentes
      para `blocked`, ramos independentes seguem
    - Cancelamento cooperativo: trabalho já iniciado termina; descendentes
      ainda não despachados são pulados
    - Target com erro não grava entrada no cache; um sub-target com erro
      perde a entrada anterior e o pai expandido volta a `pending`
    - Targets `up_to_date` não regravam entradas nem traces
    - Entradas ilegíveis viram cache miss + warning

Limites explícitos:
    - CompileError nunca chega aqui (o plano já foi compilado)
    - Não persiste o Manifest (responsabilidade da API)
"""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from atlas_targets.core.cache.fingerprint import aggregate_digest, compute_fingerprint, dynamic_fingerprint
from atlas_targets.core.cache.store import PENDING_FINGERPRINT, CacheEntry, CacheStore
from atlas_targets.core.config.settings import EngineSettings
from atlas_targets.core.dynamic.aggregate import aggregate, element_count
from atlas_targets.core.dynamic.expander import DynamicExpander, Expansion, SubTargetSpec, Upstream
from atlas_targets.core.errors import AtlasErrorPayload, blocked_by_dependency, exception_to_payload
from atlas_targets.core.exceptions import CacheCorruptionError, ExecutionError, ExpansionError
from atlas_targets.core.graph.graph import DependencyGraph, Node
from atlas_targets.core.plan.compiler import CompiledPlan
from atlas_targets.core.plan.types import TargetKind, TargetStatus
from atlas_targets.core.run_context import RunContext
from atlas_targets.core.traceability import manifest as M
from atlas_targets.core.traceability.trace_store import TraceStore, collect

from .report import RunReport, TargetOutcome


@dataclass(frozen=True)
class _Prepared:
    inputs: Dict[str, Any]
    fingerprint: str


def _execute(command: Callable[..., Any], inputs: Dict[str, Any]) -> Any:
    return command(**inputs)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _same_expansion(entry: Optional[CacheEntry], expansion: Expansion) -> bool:
    """Entrada resolvida cuja lista de sub-targets coincide com a expansão atual."""
    return (
        entry is not None
        and entry.fingerprint != PENDING_FINGERPRINT
        and entry.children == tuple(expansion.names)
        and entry.complete == expansion.complete
        and entry.total == expansion.total
    )


class Scheduler:
    """Coordenador de uma run sobre um plano compilado."""

    def __init__(
        self,
        *,
        plan: CompiledPlan,
        store: CacheStore,
        settings: EngineSettings,
        ctx: RunContext,
        manifest: Optional[M.AtlasManifest] = None,
    ):
        self.plan = plan
        self.store = store
        self.settings = settings
        self.ctx = ctx
        self.manifest = manifest
        self.graph = DependencyGraph.from_plan(plan)
        self.expander = DynamicExpander()
        self.traces = TraceStore(store)

        self._resolved: Dict[str, Upstream] = {}
        self._prepared: Dict[str, _Prepared] = {}
        self._expansions: Dict[str, Expansion] = {}
        self._previous: Dict[str, Optional[CacheEntry]] = {}
        self._errors: List[AtlasErrorPayload] = []
        self._executed: List[str] = []
        self._truncated: Dict[str, Dict[str, int]] = {}

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def run(self) -> RunReport:
        running: Dict[Future, str] = {}
        with ThreadPoolExecutor(max_workers=self.settings.jobs, thread_name_prefix="atlas-targets") as pool:
            while True:
                while self._advance(pool, running):
                    pass
                if not running:
                    break
                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: running[f]):
                    self._complete(running.pop(future), future)
        return self._report()

    def _advance(self, pool: ThreadPoolExecutor, running: Dict[Future, str]) -> bool:
        changed = self._propagate_blocked()
        for name in self.graph.ready():
            node = self.graph.node(name)
            if node.kind is TargetKind.DYNAMIC:
                if node.expanded:
                    self._resolve_dynamic(node)
                else:
                    self._expand(node)
                changed = True
                continue

            if name not in self._prepared and not self._prepare(node):
                changed = True
                continue

            if len(running) >= self.settings.jobs:
                continue
            self._dispatch(pool, running, node)
            changed = True
        return changed

    # ------------------------------------------------------------------
    # Estáticos e sub-targets
    # ------------------------------------------------------------------
    def _prepare(self, node: Node) -> bool:
        """Calcula o fingerprint; resolve cache hits. True = precisa executar."""
        decl = node.decl
        try:
            if node.kind is TargetKind.SUBTARGET:
                spec: SubTargetSpec = node.binding
                inputs, deps, extra = spec.inputs, spec.deps, spec.extra
            else:
                refs = decl.command.refs
                inputs = {r: self._resolved[r].value for r in refs}
                deps = {r: self._resolved[r].digest for r in refs}
                extra = {}
            fingerprint = compute_fingerprint(command=decl.command, deps=deps, extra=extra)
        except Exception as e:
            self._fail(node.name, e)
            return False

        node.fingerprint = fingerprint
        entry = self._lookup(node.name)
        if not self.graph.is_outdated(entry, fingerprint):
            try:
                value = self.store.load_value(entry)
            except CacheCorruptionError as e:
                self._cache_warning(node.name, e)
                self.store.discard_object(entry.value_digest)
            else:
                with self.graph.lock:
                    self.graph.transition(node.name, TargetStatus.UP_TO_DATE)
                    node.value_digest = entry.value_digest
                    self._resolved[node.name] = Upstream(value=value, digest=entry.value_digest)
                self._finished(node)
                return False

        self._prepared[node.name] = _Prepared(inputs=inputs, fingerprint=fingerprint)
        return True

    def _dispatch(self, pool: ThreadPoolExecutor, running: Dict[Future, str], node: Node) -> None:
        prepared = self._prepared.pop(node.name)
        self.graph.transition(node.name, TargetStatus.RUNNING)
        if self.manifest is not None:
            M.target_started(self.manifest, target_id=node.name, kind=node.kind.value, ts=_now())
        self.ctx.log(target_id=node.name, level="info", message="started", kind=node.kind.value)
        running[pool.submit(_execute, node.decl.command, prepared.inputs)] = node.name

    def _complete(self, name: str, future: Future) -> None:
        node = self.graph.node(name)
        exc = future.exception()
        if exc is not None:
            self._fail(name, exc)
            return

        value = future.result()
        try:
            with self.graph.lock:
                entry = self.store.commit_value(
                    target_id=name,
                    kind=node.kind.value,
                    fingerprint=node.fingerprint,
                    value=value,
                    element_count=element_count(value),
                )
                self.graph.transition(name, TargetStatus.BUILT)
                node.value_digest = entry.value_digest
                self._resolved[name] = Upstream(value=value, digest=entry.value_digest)
        except Exception as e:
            self._fail(
                name,
                ExecutionError(
                    message=f"Falha ao persistir o valor de '{name}'",
                    details={"target": name, "exception_class": e.__class__.__name__, "reason": str(e)},
                    hint="O valor retornado pelo comando precisa ser serializável com joblib.",
                ),
            )
            return

        self._executed.append(name)
        self._finished(node)

    # ------------------------------------------------------------------
    # Dinâmicos
    # ------------------------------------------------------------------
    def _expand(self, node: Node) -> None:
        name = node.name
        upstream = {d: self._resolved[d] for d in self.graph.dependencies(name)}
        previous = self._lookup(name)
        self._previous[name] = previous

        try:
            expansion = self.expander.expand(node.decl, upstream, run_cap=self.settings.max_expand)
            if self.settings.trace_enabled and node.decl.dynamic.trace:
                self.traces.write(name, collect(expansion.children))
            with self.graph.lock:
                self.graph.insert_subtargets(
                    name, [(c.name, c.index, c, c.sources) for c in expansion.children]
                )
                if not _same_expansion(previous, expansion):
                    self._commit_pending(name, expansion)
        except ExpansionError as e:
            self._fail(name, e)
            return
        except Exception as e:
            self._fail(
                name,
                ExpansionError(
                    message=f"Falha na expansão de '{name}'",
                    details={"target": name, "exception_class": e.__class__.__name__, "reason": str(e)},
                ),
            )
            return

        self._expansions[name] = expansion
        if not expansion.complete:
            self._truncated[name] = {"materialized": len(expansion.children), "total": expansion.total}

        if self.manifest is not None:
            M.target_expanded(
                self.manifest, target_id=name, ts=_now(), children=expansion.names, total=expansion.total
            )
        self.ctx.log(
            target_id=name,
            level="info",
            message="expanded",
            materialized=len(expansion.children),
            total=expansion.total,
        )

    def _resolve_dynamic(self, node: Node) -> None:
        name = node.name
        expansion = self._expansions[name]
        branches = tuple(
            (c, self._resolved[c].value, self._resolved[c].digest) for c in expansion.names
        )

        try:
            value = aggregate(name, [v for _, v, _ in branches])
        except ExpansionError as e:
            self._fail(name, e)
            return

        fingerprint = dynamic_fingerprint(
            [(c, self.graph.node(c).fingerprint) for c in expansion.names],
            complete=expansion.complete,
        )
        previous = self._previous.get(name)
        cached = (
            previous is not None
            and previous.fingerprint == fingerprint
            and all(self.graph.node(c).status is TargetStatus.UP_TO_DATE for c in expansion.names)
        )
        digest = aggregate_digest([d for _, _, d in branches])

        with self.graph.lock:
            if not (cached and _same_expansion(previous, expansion)):
                self.store.commit_entry(
                    self.store.new_entry(
                        target_id=name,
                        kind=TargetKind.DYNAMIC.value,
                        fingerprint=fingerprint,
                        value_digest=None,
                        element_count=element_count(value),
                        children=tuple(expansion.names),
                        complete=expansion.complete,
                        total=expansion.total,
                    )
                )
            if cached:
                self.graph.transition(name, TargetStatus.UP_TO_DATE)
            else:
                self.graph.transition(name, TargetStatus.RUNNING)
                self.graph.transition(name, TargetStatus.BUILT)
            node.fingerprint = fingerprint
            node.value_digest = digest
            self._resolved[name] = Upstream(value=value, digest=digest, branches=branches)

        self._finished(node)

    def _commit_pending(self, name: str, expansion: Expansion) -> None:
        self.store.commit_entry(
            self.store.new_entry(
                target_id=name,
                kind=TargetKind.DYNAMIC.value,
                fingerprint=PENDING_FINGERPRINT,
                value_digest=None,
                children=tuple(expansion.names),
                complete=expansion.complete,
                total=expansion.total,
            )
        )

    # ------------------------------------------------------------------
    # Falhas, cache e registro
    # ------------------------------------------------------------------
    def _propagate_blocked(self) -> bool:
        changed = False
        while True:
            candidates = self.graph.blocked_candidates()
            if not candidates:
                return changed
            for name, dependency in candidates:
                payload = blocked_by_dependency(target_id=name, dependency=dependency)
                with self.graph.lock:
                    node = self.graph.transition(name, TargetStatus.BLOCKED)
                    node.error = payload
                self._invalidate(node)
                if self.manifest is not None:
                    M.target_blocked(
                        self.manifest, target_id=name, kind=node.kind.value, ts=_now(), dependency=dependency
                    )
                self.ctx.log(target_id=name, level="warning", message="blocked", dependency=dependency)
            changed = True

    def _fail(self, name: str, exc: BaseException) -> None:
        payload = exception_to_payload(exc, target_id=name)
        with self.graph.lock:
            node = self.graph.transition(name, TargetStatus.ERRORED)
            node.error = payload
        self._invalidate(node)
        self._errors.append(payload)
        if self.manifest is not None:
            M.target_failed(self.manifest, target_id=name, kind=node.kind.value, ts=_now(), error=payload.to_dict())
        self.ctx.log(target_id=name, level="error", message=payload.message, error_type=payload.type)

    def _invalidate(self, node: Node) -> None:
        """Impede que entradas de runs anteriores sejam lidas como resultado desta."""
        if node.kind is TargetKind.SUBTARGET:
            self.store.remove(node.name)
        elif node.kind is TargetKind.DYNAMIC and node.name in self._expansions:
            self._commit_pending(node.name, self._expansions[node.name])

    def _finished(self, node: Node) -> None:
        if self.manifest is not None:
            M.target_finished(
                self.manifest,
                target_id=node.name,
                kind=node.kind.value,
                status=node.status.value,
                ts=_now(),
                fingerprint=node.fingerprint,
            )
        self.ctx.log(target_id=node.name, level="info", message=node.status.value)

    def _lookup(self, name: str) -> Optional[CacheEntry]:
        try:
            return self.store.lookup(name)
        except CacheCorruptionError as e:
            self._cache_warning(name, e)
            return None

    def _cache_warning(self, name: str, exc: CacheCorruptionError) -> None:
        self.ctx.add_warning(target_id=name, message=exc.message)
        if self.manifest is not None:
            M.cache_warning(self.manifest, target_id=name, ts=_now(), reason=exc.message)
        self.ctx.log(target_id=name, level="warning", message=exc.message)

    def _report(self) -> RunReport:
        targets = {
            n.name: TargetOutcome(
                target_id=n.name,
                kind=n.kind.value,
                status=n.status,
                parent=n.parent,
                error=n.error,
            )
            for n in self.graph.nodes()
        }
        return RunReport(
            run_id=self.ctx.run_id,
            targets=targets,
            errors=list(self._errors),
            warnings={k: list(v) for k, v in self.ctx.warnings.items()},
            executed=list(self._executed),
            truncated=dict(self._truncated),
        )
