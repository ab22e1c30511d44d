# src/atlas_targets/api.py
"""
API pública do Atlas Targets.

O `Workspace` é o ponto de entrada: resolve a configuração, possui o cache
store persistente e expõe as operações de execução e leitura.

    with Workspace("meu_projeto") as ws:
        report = ws.run(plan, jobs=4)
        ws.read("scores")

Operações:
    - run(plan, jobs, max_expand)   → RunReport
    - read(target_id, mode)         → valor agregado ou mapeamento por sub-target
    - read_trace(trace_name, id)    → traces alinhados à ordem de geração
    - subtargets(target_id)         → sub-targets materializados
    - graph_info()                  → snapshot do grafo da última run
    - clean(destroy)                → purga cache/trace (ou remove o store)
    - outdated(plan)                → targets que seriam reconstruídos
    - compile(plan)                 → validação sem execução

Erros:
    - `run()` levanta CompileError antes de executar qualquer target;
      demais falhas são capturadas no RunReport
    - leituras de targets sem entrada válida levantam TargetNotBuiltError
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from atlas_targets.core.cache.store import CacheEntry, CacheStore
from atlas_targets.core.config.hashing import compute_config_hash, sha256_hex
from atlas_targets.core.config.loader import load_config
from atlas_targets.core.config.settings import EngineSettings, resolve_settings
from atlas_targets.core.dynamic.aggregate import AGGREGATE, LIST, READ_MODES, aggregate, as_mapping
from atlas_targets.core.engine.report import RunReport
from atlas_targets.core.engine.scheduler import Scheduler
from atlas_targets.core.engine.staleness import outdated_targets
from atlas_targets.core.exceptions import CacheCorruptionError, TargetNotBuiltError
from atlas_targets.core.graph.graph import DependencyGraph
from atlas_targets.core.plan.compiler import CompiledPlan, PlanRecord, compile_plan
from atlas_targets.core.plan.loader import load_plan
from atlas_targets.core.run_context import RunContext
from atlas_targets.core.traceability.manifest import create_manifest, save_manifest
from atlas_targets.core.traceability.trace_store import TraceStore


ATLAS_VERSION = "0.1.0"

PlanInput = Union[CompiledPlan, str, Path, Iterable[PlanRecord]]


def _new_run_id(started_at: datetime) -> str:
    return f"{started_at.strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:8]}"


def plan_hash(plan: CompiledPlan) -> str:
    """Hash semântico do plano (nomes, comandos e dependências)."""
    return sha256_hex(
        [[d.name, d.command.representation(), list(plan.deps[d.name])] for d in plan.targets]
    )


class Workspace:
    """
    Workspace de um projeto: configuração efetiva + cache store.

    Args:
        root: diretório do projeto; `store.path` relativo é resolvido a
            partir dele (padrão: diretório corrente).
        config: overrides de configuração em código (maior precedência).
        config_path: arquivo de configuração do projeto (YAML/JSON).
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        *,
        config: Optional[Dict[str, Any]] = None,
        config_path: Optional[Union[str, Path]] = None,
    ):
        self.root = Path(root) if root is not None else Path.cwd()
        self.config: Dict[str, Any] = load_config(path=config_path, overrides=config)
        self.settings: EngineSettings = resolve_settings(self.config)

        store_path = self.settings.store_path
        if not store_path.is_absolute():
            store_path = self.root / store_path
        self.store = CacheStore(store_path)
        self.traces = TraceStore(self.store)

        self._graph: Optional[DependencyGraph] = None
        self.last_context: Optional[RunContext] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "Workspace":
        self.store.open()
        return self

    def flush(self) -> None:
        self.store.flush()

    def close(self) -> None:
        if self.store.is_open:
            self.store.close()

    def __enter__(self) -> "Workspace":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _open_store(self) -> CacheStore:
        if not self.store.is_open:
            self.store.open()
        return self.store

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def compile(self, plan: PlanInput) -> CompiledPlan:
        """Valida o plano; aceita registros, `CompiledPlan` ou caminho YAML/JSON."""
        if isinstance(plan, CompiledPlan):
            return plan
        if isinstance(plan, (str, Path)):
            plan = load_plan(plan)
        return compile_plan(plan)

    def run(self, plan: PlanInput, *, jobs: Optional[int] = None, max_expand: Optional[int] = None) -> RunReport:
        """
        Executa o trabalho pendente do plano.

        Args:
            plan: plano a executar.
            jobs: tamanho do pool (sobrepõe `engine.jobs`).
            max_expand: cap de sub-targets por target dinâmico nesta run.

        Returns:
            RunReport: status final por target, erros e warnings.

        Raises:
            CompileError: plano inválido (nenhum target é executado).
            InvalidSettingError: `jobs` inválido.
        """
        compiled = self.compile(plan)
        settings = self.settings.with_overrides(jobs=jobs, max_expand=max_expand)
        store = self._open_store()

        started_at = datetime.now(timezone.utc)
        run_id = _new_run_id(started_at)
        ctx = RunContext(
            run_id=run_id,
            created_at=started_at.isoformat(),
            config=self.config,
            meta={"store_path": str(store.root), "jobs": settings.jobs, "max_expand": settings.max_expand},
        )
        manifest = None
        if settings.manifest_enabled:
            manifest = create_manifest(
                run_id=run_id,
                started_at=started_at,
                atlas_version=ATLAS_VERSION,
                config_hash=compute_config_hash(self.config),
                plan_hash=plan_hash(compiled),
            )

        scheduler = Scheduler(plan=compiled, store=store, settings=settings, ctx=ctx, manifest=manifest)
        report = scheduler.run()
        self._graph = scheduler.graph
        self.last_context = ctx

        if manifest is not None:
            manifest.run["finished_at"] = datetime.now(timezone.utc).isoformat()
            manifest.run["exit_code"] = report.exit_code
            save_manifest(manifest, store.run_dir(run_id) / "manifest.json")
        store.flush()
        return report

    def outdated(self, plan: PlanInput, *, max_expand: Optional[int] = None) -> List[str]:
        """Targets que `run(plan)` reconstruiria, sem executar nada."""
        cap = max_expand if max_expand is not None else self.settings.max_expand
        return outdated_targets(self.compile(plan), self._open_store(), max_expand=cap)

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------
    def _entry(self, target_id: str) -> CacheEntry:
        store = self._open_store()
        try:
            entry = store.lookup(target_id)
        except CacheCorruptionError as e:
            raise TargetNotBuiltError(
                message=f"Target '{target_id}' possui entrada de cache ilegível",
                details={"target_id": target_id, "reason": e.message},
                hint="Reexecute o plano para reconstruí-lo.",
            ) from e
        if entry is None:
            raise TargetNotBuiltError(
                message=f"Target '{target_id}' ainda não foi construído",
                details={"target_id": target_id},
                hint="Execute `run()` com um plano que contenha o target.",
            )
        return entry

    def _load(self, entry: CacheEntry) -> Any:
        try:
            return self.store.load_value(entry)
        except CacheCorruptionError as e:
            raise TargetNotBuiltError(
                message=f"Valor de '{entry.target_id}' ilegível",
                details={"target_id": entry.target_id, "reason": e.message},
                hint="Reexecute o plano para reconstruí-lo.",
            ) from e

    def _children(self, entry: CacheEntry) -> Tuple[List[str], List[Any]]:
        # Sub-targets sem entrada (não materializados ou com erro) ficam de fora.
        names: List[str] = []
        values: List[Any] = []
        for child in entry.children:
            try:
                child_entry = self.store.lookup(child)
                if child_entry is None:
                    continue
                values.append(self.store.load_value(child_entry))
            except CacheCorruptionError:
                continue
            names.append(child)
        return names, values

    def read(self, target_id: str, mode: str = AGGREGATE) -> Any:
        """
        Lê o valor de um target.

        Args:
            target_id: target estático, dinâmico ou sub-target.
            mode: "aggregate" (concatena sub-targets em ordem de geração) ou
                "list" (mapeamento `{sub_target_id: valor}`).

        Raises:
            ValueError: modo desconhecido.
            TargetNotBuiltError: target sem entrada válida.
            ExpansionError: sub-targets com tipos estruturais diferentes
                (modo aggregate).
        """
        if mode not in READ_MODES:
            raise ValueError(f"mode deve ser um de {READ_MODES}, recebido: {mode!r}")

        entry = self._entry(target_id)
        if entry.kind != "dynamic":
            value = self._load(entry)
            return {target_id: value} if mode == LIST else value

        names, values = self._children(entry)
        if mode == LIST:
            return as_mapping(names, values)
        return aggregate(target_id, values)

    def read_trace(self, trace_name: str, target_id: str) -> List[Any]:
        """Valores de `trace_name` alinhados à ordem de geração dos sub-targets."""
        entry = self._entry(target_id)
        return self.traces.read(trace_name, target_id, entry.children)

    def subtargets(self, target_id: str) -> List[str]:
        """Sub-targets materializados de `target_id`, em ordem de geração."""
        return list(self._entry(target_id).children)

    def graph_info(self) -> Dict[str, List[Dict[str, Any]]]:
        if self._graph is None:
            return {"nodes": [], "edges": []}
        return self._graph.info()

    # ------------------------------------------------------------------
    # Purga
    # ------------------------------------------------------------------
    def clean(self, destroy: bool = False) -> List[str]:
        """
        Purga entradas, objetos e traces; `destroy=True` remove o store por
        completo (inclusive manifests de runs). Retorna os ids removidos.
        """
        removed = list(self.store.entries())
        if destroy:
            self.store.destroy()
        else:
            self._open_store().purge()
        self._graph = None
        return removed


def open_workspace(root: Optional[Union[str, Path]] = None, **kwargs: Any) -> Workspace:
    return Workspace(root, **kwargs).open()


__all__ = ["ATLAS_VERSION", "Workspace", "open_workspace", "plan_hash"]
