"""
Dynamic Expander do Atlas Targets.

Expande um target dinâmico em sub-targets dependentes dos dados, assim que
todas as suas dependências estão resolvidas.

Operações:
    - map:   um sub-target por fatia; fontes com a mesma contagem de fatias,
             fontes unitárias são replicadas (broadcast)
    - cross: um sub-target por combinação; a primeira fonte varia mais
             devagar (ordem de `itertools.product`)
    - group: um sub-target por valor distinto da chave, na ordem da primeira
             ocorrência; `by` é um target co-fatiado ou uma função aplicada
             a cada fatia

Identidade de sub-targets:
    `<pai>_<8 hex>`, derivado do conteúdo das fatias ligadas (map/cross) ou
    do digest da chave (group). A identidade acompanha os dados, não a
    posição: inserir uma fatia não invalida as demais.

Fingerprint de sub-targets:
    cada fonte contribui com o digest da própria fatia; em group, com os
    digests ordenados das fatias-membro, de modo que a ordem das fatias não
    altera o cache.

Decisões arquiteturais:
    - Fontes dinâmicas são fatiadas por ramo: uma fatia por sub-target
    - `max_expand` efetivo = min(cap do target, cap da run); apenas os
      primeiros `cap` sub-targets, em ordem de geração, são materializados
    - Expansão é atômica por target: lock + memo; o primeiro a expandir
      vence e os demais observam o mesmo resultado (ou o mesmo erro)

Limites explícitos:
    - Não executa comandos de sub-targets
    - Não consulta nem escreve no cache
"""

from __future__ import annotations

import inspect
import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

import pandas as pd

from atlas_targets.core import values as V
from atlas_targets.core.cache.fingerprint import value_digest
from atlas_targets.core.config.hashing import sha256_hex
from atlas_targets.core.exceptions import ExpansionError
from atlas_targets.core.plan.types import DynamicOp, TargetDecl


@dataclass(frozen=True)
class Upstream:
    """
    Valor resolvido de uma dependência.

    `branches` só existe para dependências dinâmicas: `(sub_id, valor,
    digest)` de cada sub-target, em ordem de geração.
    """

    value: Any
    digest: str
    branches: Optional[Tuple[Tuple[str, Any, str], ...]] = None

    def slices(self) -> List[Tuple[Any, str]]:
        """Fatias `(valor, digest)` usadas no branching."""
        if self.branches is not None:
            return [(v, d) for _, v, d in self.branches]
        return [(s, value_digest(s)) for s in V.slices(self.value)]


@dataclass(frozen=True)
class SubTargetSpec:
    """
    Sub-target materializado.

    Campos:
        - name: identificador `<pai>_<8 hex>`
        - index: posição em ordem de geração
        - inputs: argumentos do comando (fontes fatiadas, demais inteiras)
        - deps: contribuição de cada dependência para o fingerprint
        - extra: identidade da expansão
        - sources: targets dos quais o sub-target depende no grafo
        - trace: valores de trace registrados para este sub-target
    """

    name: str
    index: int
    inputs: Dict[str, Any]
    deps: Dict[str, Any]
    extra: Dict[str, Any]
    sources: Tuple[str, ...]
    trace: Dict[str, Any]


@dataclass(frozen=True)
class Expansion:
    target: str
    children: Tuple[SubTargetSpec, ...]
    total: int
    cap: Optional[int] = None

    @property
    def complete(self) -> bool:
        return len(self.children) == self.total

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.children]


@dataclass
class _Binding:
    key: Any
    slices: Dict[str, Any]
    digests: Dict[str, Any]
    trace_slices: Dict[str, Any]


# ---------------------------------------------------------------------------
# Cap
# ---------------------------------------------------------------------------

def effective_cap(target: str, spec_cap: Any, run_cap: Any) -> Optional[int]:
    """min(cap do target, cap da run); caps inválidos falham só este target."""
    caps: List[int] = []
    for origin, cap in (("dynamic.max_expand", spec_cap), ("max_expand", run_cap)):
        if cap is None:
            continue
        if isinstance(cap, bool) or not isinstance(cap, int) or cap < 0:
            raise ExpansionError(
                message=f"max_expand inválido para '{target}': {cap!r}",
                details={"target": target, "origin": origin, "value": repr(cap)},
                hint="Use um inteiro >= 0.",
            )
        caps.append(cap)
    return min(caps) if caps else None


# ---------------------------------------------------------------------------
# Operações
# ---------------------------------------------------------------------------

def _bind_map(target: str, sources: Sequence[str], upstream: Mapping[str, Upstream]) -> List[_Binding]:
    per_source = {s: upstream[s].slices() for s in sources}
    counts = {s: len(per_source[s]) for s in sources}

    lengths = set(counts.values()) - {1}
    if len(lengths) > 1:
        raise ExpansionError(
            message=f"Contagens de fatias incompatíveis em '{target}'",
            details={"target": target, "counts": counts},
            hint="map exige fontes com a mesma contagem de fatias, ou fontes unitárias.",
        )
    n = lengths.pop() if lengths else 1

    out = []
    for i in range(n):
        bound = {s: per_source[s][i if counts[s] != 1 else 0] for s in sources}
        out.append(
            _Binding(
                key=[bound[s][1] for s in sources],
                slices={s: bound[s][0] for s in sources},
                digests={s: bound[s][1] for s in sources},
                trace_slices={s: bound[s][0] for s in sources},
            )
        )
    return out


def _bind_cross(target: str, sources: Sequence[str], upstream: Mapping[str, Upstream]) -> List[_Binding]:
    per_source = [upstream[s].slices() for s in sources]
    out = []
    for combo in itertools.product(*per_source):
        out.append(
            _Binding(
                key=[d for _, d in combo],
                slices={s: v for s, (v, _) in zip(sources, combo)},
                digests={s: d for s, (_, d) in zip(sources, combo)},
                trace_slices={s: v for s, (v, _) in zip(sources, combo)},
            )
        )
    return out


def _key_content(key_slice: Any) -> Any:
    content = V.unwrap(key_slice)
    if isinstance(content, pd.DataFrame) and len(content.index) == 1:
        return tuple(content.iloc[0].tolist())
    return content


def _bind_group(
    target: str,
    source: str,
    by: Union[str, Callable[[Any], Any]],
    upstream: Mapping[str, Upstream],
) -> List[_Binding]:
    src_slices = upstream[source].slices()

    if isinstance(by, str):
        key_slices = [v for v, _ in upstream[by].slices()]
        if len(key_slices) != len(src_slices):
            raise ExpansionError(
                message=f"Chave de grupo de '{target}' não é co-fatiada com a fonte",
                details={"target": target, "source": len(src_slices), "by": len(key_slices)},
                hint="A chave deve ter a mesma contagem de fatias da fonte.",
            )
        keys = [value_digest(_key_content(k)) for k in key_slices]
    else:
        key_slices = []
        keys = []
        for value, _ in src_slices:
            try:
                key = by(value)
            except Exception as e:
                raise ExpansionError(
                    message=f"Função de chave de '{target}' falhou",
                    details={"target": target, "exception_class": e.__class__.__name__, "reason": str(e)},
                ) from e
            key_slices.append(key)
            keys.append(value_digest(key))

    members: Dict[str, List[int]] = {}
    for i, key in enumerate(keys):
        members.setdefault(key, []).append(i)

    out = []
    for key, idx in members.items():
        try:
            merged = V.concat([src_slices[i][0] for i in idx])
        except Exception as e:
            raise ExpansionError(
                message=f"Fatias do grupo não concatenáveis em '{target}'",
                details={"target": target, "exception_class": e.__class__.__name__},
            ) from e

        slices = {source: merged}
        digests: Dict[str, Any] = {source: sorted(src_slices[i][1] for i in idx)}
        trace_slices = {source: src_slices[idx[0]][0]}
        if isinstance(by, str):
            slices[by] = V.concat([key_slices[i] for i in idx])
            digests[by] = key
            trace_slices[by] = key_slices[idx[0]]

        out.append(_Binding(key=key, slices=slices, digests=digests, trace_slices=trace_slices))
    return out


# ---------------------------------------------------------------------------
# Identidade e trace
# ---------------------------------------------------------------------------

def _child_name(parent: str, key: Any, taken: Set[str]) -> str:
    # Fatias duplicadas ou colisões de prefixo recebem o próximo contador.
    n = 0
    while True:
        name = f"{parent}_{sha256_hex({'key': key, 'n': n})[:8]}"
        if name not in taken:
            taken.add(name)
            return name
        n += 1


def _call_with(fn: Callable[..., Any], inputs: Mapping[str, Any]) -> Any:
    params = inspect.signature(fn).parameters.values()
    if any(p.kind is p.VAR_KEYWORD for p in params):
        return fn(**inputs)
    return fn(**{p.name: inputs[p.name] for p in params if p.name in inputs})


def _record_trace(target: str, decl: TargetDecl, binding: _Binding, inputs: Mapping[str, Any]) -> Dict[str, Any]:
    assert decl.dynamic is not None
    out: Dict[str, Any] = {}
    for trace_name, expr in decl.dynamic.trace:
        if isinstance(expr, str):
            out[trace_name] = V.unwrap(binding.trace_slices[expr])
            continue
        try:
            out[trace_name] = _call_with(expr, inputs)
        except Exception as e:
            raise ExpansionError(
                message=f"Trace '{trace_name}' de '{target}' falhou",
                details={"target": target, "trace": trace_name, "exception_class": e.__class__.__name__},
            ) from e
    return out


# ---------------------------------------------------------------------------
# Expansão
# ---------------------------------------------------------------------------

def expand(decl: TargetDecl, upstream: Mapping[str, Upstream], *, run_cap: Any = None) -> Expansion:
    """
    Expande `decl` sobre os valores resolvidos de suas dependências.

    Args:
        decl: declaração de um target dinâmico.
        upstream: valores resolvidos por nome de dependência.
        run_cap: `max_expand` da run (opcional).

    Returns:
        Expansion: sub-targets materializados e contagem total gerada.

    Raises:
        ExpansionError: contagens incompatíveis, chave inválida, cap
            inválido ou trace com falha. Nenhum sub-target é produzido.
    """
    spec = decl.dynamic
    if spec is None:
        raise ExpansionError(
            message=f"Target '{decl.name}' não é dinâmico",
            details={"target": decl.name},
        )

    cap = effective_cap(decl.name, spec.max_expand, run_cap)

    if spec.op is DynamicOp.MAP:
        bindings = _bind_map(decl.name, spec.sources, upstream)
    elif spec.op is DynamicOp.CROSS:
        bindings = _bind_cross(decl.name, spec.sources, upstream)
    else:
        bindings = _bind_group(decl.name, spec.sources[0], spec.by, upstream)

    taken: Set[str] = set()
    names = [_child_name(decl.name, b.key, taken) for b in bindings]
    materialized = bindings if cap is None else bindings[:cap]

    graph_deps = tuple(spec.sources) + ((spec.by,) if isinstance(spec.by, str) else ())
    children = []
    for index, binding in enumerate(materialized):
        inputs: Dict[str, Any] = {}
        deps: Dict[str, Any] = {}
        for ref in decl.command.refs:
            if ref in binding.slices:
                inputs[ref] = binding.slices[ref]
                deps[ref] = binding.digests[ref]
            else:
                inputs[ref] = upstream[ref].value
                deps[ref] = upstream[ref].digest
        for name, digest in binding.digests.items():
            deps.setdefault(name, digest)

        children.append(
            SubTargetSpec(
                name=names[index],
                index=index,
                inputs=inputs,
                deps=deps,
                extra={"op": spec.op.value},
                sources=graph_deps,
                trace=_record_trace(decl.name, decl, binding, inputs),
            )
        )

    return Expansion(target=decl.name, children=tuple(children), total=len(bindings), cap=cap)


class DynamicExpander:
    """Expansão atômica por target, com memo por run."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._memo: Dict[str, Union[Expansion, ExpansionError]] = {}

    def _lock_for(self, target: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(target, threading.Lock())

    def expand(self, decl: TargetDecl, upstream: Mapping[str, Upstream], *, run_cap: Any = None) -> Expansion:
        with self._lock_for(decl.name):
            result = self._memo.get(decl.name)
            if result is None:
                try:
                    result = expand(decl, upstream, run_cap=run_cap)
                except ExpansionError as e:
                    result = e
                self._memo[decl.name] = result
        if isinstance(result, ExpansionError):
            raise result
        return result

    def expanded(self, target: str) -> bool:
        return target in self._memo
