"""
Plan Compiler do Atlas Targets.

Este módulo transforma declarações de targets em um `CompiledPlan`: o
esqueleto estático do grafo de dependências, validado por completo antes
de qualquer execução.

Validações (exaustivas e fatais):
    - nomes válidos e únicos (TargetRegistry)
    - toda referência de comando resolve para um target declarado
    - specs dinâmicas usam operação suportada sobre fontes declaradas
    - o grafo estático é acíclico (busca em profundidade, com o caminho
      do ciclo na mensagem)

Decisões arquiteturais:
    - Ordenação topológica determinística (Kahn); empates por ordem
      lexicográfica do nome
    - Targets dinâmicos ficam marcados como pendentes de expansão; seus
      sub-targets só existem em runtime

Limites explícitos:
    - Não executa targets
    - Não consulta o cache
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from atlas_targets.core.exceptions import (
    CycleDetectedError,
    InvalidPlanError,
    UnknownReferenceError,
    UnsupportedOperationError,
)

from .command import Command
from .registry import TargetRegistry
from .types import DynamicOp, DynamicSpec, TargetDecl, normalize_trace


PlanRecord = Union[TargetDecl, Mapping[str, Any]]


@dataclass(frozen=True)
class CompiledPlan:
    """
    Esqueleto estático validado de um plano.

    Campos:
        - targets: declarações em ordem de declaração
        - deps: dependências diretas por target (refs do comando + fontes)
        - order: ordem topológica determinística
    """

    targets: Tuple[TargetDecl, ...]
    deps: Dict[str, Tuple[str, ...]]
    order: Tuple[str, ...]

    def get(self, name: str) -> TargetDecl:
        for decl in self.targets:
            if decl.name == name:
                return decl
        raise KeyError(name)

    @property
    def names(self) -> List[str]:
        return [d.name for d in self.targets]

    def dependents(self, name: str) -> List[str]:
        return sorted(n for n, ds in self.deps.items() if name in ds)

    def descendants(self, name: str) -> List[str]:
        seen: List[str] = []
        stack = [name]
        while stack:
            current = stack.pop()
            for child in self.dependents(current):
                if child not in seen:
                    seen.append(child)
                    stack.append(child)
        return sorted(seen)


# ---------------------------------------------------------------------------
# Normalização de registros
# ---------------------------------------------------------------------------

def _normalize_dynamic(name: str, raw: Any) -> Optional[DynamicSpec]:
    if raw is None or isinstance(raw, DynamicSpec):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidPlanError(
            message=f"Spec dinâmica inválida em '{name}'",
            details={"target": name, "received": type(raw).__name__},
        )

    op_raw = raw.get("op")
    try:
        op = DynamicOp(op_raw)
    except ValueError:
        raise UnsupportedOperationError(
            message=f"Operação dinâmica não suportada em '{name}': {op_raw!r}",
            details={"target": name, "op": repr(op_raw), "supported": [o.value for o in DynamicOp]},
        ) from None

    sources = raw.get("sources", ())
    if isinstance(sources, str):
        sources = (sources,)

    try:
        trace = normalize_trace(raw.get("trace"))
    except TypeError as e:
        raise InvalidPlanError(
            message=f"Trace inválido em '{name}'",
            details={"target": name, "reason": str(e)},
        ) from None

    return DynamicSpec(
        op=op,
        sources=tuple(sources),
        by=raw.get("by"),
        trace=trace,
        max_expand=raw.get("max_expand"),
    )


def normalize_record(record: PlanRecord) -> TargetDecl:
    """Converte um registro `{name, command, dynamic?}` em `TargetDecl`."""
    if isinstance(record, TargetDecl):
        return record

    if not isinstance(record, Mapping):
        raise InvalidPlanError(
            message="Registro de plano deve ser dict ou TargetDecl",
            details={"received": type(record).__name__},
        )

    name = record.get("name")
    command = record.get("command")
    if command is None:
        raise InvalidPlanError(
            message=f"Target '{name}' sem comando",
            details={"target": repr(name)},
        )

    if not isinstance(command, Command):
        if not callable(command):
            raise InvalidPlanError(
                message=f"Comando de '{name}' não é executável",
                details={"target": repr(name), "received": type(command).__name__},
            )
        command = Command.from_callable(
            command,
            refs=record.get("refs"),
            watch=record.get("watch", ()) or (),
        )

    return TargetDecl(name=name, command=command, dynamic=_normalize_dynamic(str(name), record.get("dynamic")))


# ---------------------------------------------------------------------------
# Validação
# ---------------------------------------------------------------------------

def _validate_dynamic(decl: TargetDecl, registry: TargetRegistry) -> None:
    spec = decl.dynamic
    assert spec is not None
    name = decl.name

    if not isinstance(spec.op, DynamicOp):
        raise UnsupportedOperationError(
            message=f"Operação dinâmica não suportada em '{name}'",
            details={"target": name, "op": repr(spec.op)},
        )

    if not spec.sources:
        raise InvalidPlanError(
            message=f"Target dinâmico '{name}' sem fontes",
            details={"target": name, "op": spec.op.value},
        )

    if len(set(spec.sources)) != len(spec.sources):
        raise InvalidPlanError(
            message=f"Fontes repetidas em '{name}'",
            details={"target": name, "sources": list(spec.sources)},
        )

    for source in spec.sources:
        if source not in registry:
            raise UnknownReferenceError(
                message=f"Target '{name}' expande sobre fonte inexistente '{source}'",
                details={"target": name, "reference": source},
            )
        if source not in decl.command.refs:
            raise InvalidPlanError(
                message=f"Fonte '{source}' não é referenciada pelo comando de '{name}'",
                details={"target": name, "source": source, "refs": list(decl.command.refs)},
                hint="Declare a fonte como parâmetro do comando.",
            )

    if spec.op is DynamicOp.GROUP:
        if len(spec.sources) != 1:
            raise InvalidPlanError(
                message=f"group em '{name}' exige exatamente uma fonte",
                details={"target": name, "sources": list(spec.sources)},
            )
        if spec.by is None:
            raise InvalidPlanError(
                message=f"group em '{name}' exige `by`",
                details={"target": name},
            )
        if isinstance(spec.by, str):
            if spec.by not in registry:
                raise UnknownReferenceError(
                    message=f"Chave de grupo de '{name}' referencia target inexistente '{spec.by}'",
                    details={"target": name, "reference": spec.by},
                )
            if spec.by in spec.sources:
                raise InvalidPlanError(
                    message=f"Chave de grupo de '{name}' não pode ser a própria fonte",
                    details={"target": name, "by": spec.by},
                )
        elif not callable(spec.by):
            raise InvalidPlanError(
                message=f"`by` de '{name}' deve ser nome de target ou função",
                details={"target": name, "received": type(spec.by).__name__},
            )
    elif spec.by is not None:
        raise InvalidPlanError(
            message=f"`by` só é suportado em group ('{name}' usa {spec.op.value})",
            details={"target": name, "op": spec.op.value},
        )

    allowed_names = set(spec.sources) | ({spec.by} if isinstance(spec.by, str) else set())
    seen = set()
    for trace_name, expr in spec.trace:
        if trace_name in seen:
            raise InvalidPlanError(
                message=f"Trace duplicado '{trace_name}' em '{name}'",
                details={"target": name, "trace": trace_name},
            )
        seen.add(trace_name)
        if isinstance(expr, str):
            if expr not in allowed_names:
                raise UnknownReferenceError(
                    message=f"Trace '{trace_name}' de '{name}' referencia '{expr}', que não é fonte nem chave",
                    details={"target": name, "trace": trace_name, "reference": expr},
                )
        elif not callable(expr):
            raise InvalidPlanError(
                message=f"Trace '{trace_name}' de '{name}' deve ser nome de fonte ou função",
                details={"target": name, "trace": trace_name},
            )


def _dependencies(decl: TargetDecl) -> Tuple[str, ...]:
    out: List[str] = list(decl.command.refs)
    if decl.dynamic is not None:
        for source in decl.dynamic.sources:
            if source not in out:
                out.append(source)
        by = decl.dynamic.by_target
        if by is not None and by not in out:
            out.append(by)
    return tuple(out)


def find_cycle(deps: Mapping[str, Sequence[str]]) -> Optional[List[str]]:
    """Busca em profundidade; retorna o caminho do primeiro ciclo encontrado."""
    WHITE, GRAY, BLACK = 0, 1, 2
    color: Dict[str, int] = {n: WHITE for n in deps}

    for root in deps:
        if color[root] != WHITE:
            continue
        path: List[str] = [root]
        stack: List[Tuple[str, int]] = [(root, 0)]
        color[root] = GRAY
        while stack:
            node, idx = stack[-1]
            children = deps[node]
            if idx < len(children):
                stack[-1] = (node, idx + 1)
                child = children[idx]
                if color[child] == GRAY:
                    return path[path.index(child):] + [child]
                if color[child] == WHITE:
                    color[child] = GRAY
                    stack.append((child, 0))
                    path.append(child)
            else:
                color[node] = BLACK
                stack.pop()
                path.pop()
    return None


def topological_order(deps: Mapping[str, Sequence[str]]) -> List[str]:
    """Kahn determinístico: empates resolvidos por ordem lexicográfica."""
    incoming: Dict[str, int] = {n: len(set(ds)) for n, ds in deps.items()}
    outgoing: Dict[str, set] = {n: set() for n in deps}
    for name, ds in deps.items():
        for d in set(ds):
            outgoing[d].add(name)

    ready = sorted(n for n, c in incoming.items() if c == 0)
    order: List[str] = []
    while ready:
        current = ready.pop(0)
        order.append(current)
        for child in sorted(outgoing[current]):
            incoming[child] -= 1
            if incoming[child] == 0:
                ready.append(child)
                ready.sort()
    return order


def compile_plan(plan: Iterable[PlanRecord]) -> CompiledPlan:
    """
    Valida um plano e produz seu esqueleto estático.

    Args:
        plan: registros `{name, command, dynamic?}` ou `TargetDecl`.

    Returns:
        CompiledPlan: declarações, dependências diretas e ordem topológica.

    Raises:
        InvalidPlanError: registro malformado.
        DuplicateTargetError: nome repetido.
        UnknownReferenceError: referência a target não declarado.
        UnsupportedOperationError: operação dinâmica desconhecida.
        CycleDetectedError: ciclo no grafo estático.
    """
    registry = TargetRegistry()
    for record in plan:
        registry.add(normalize_record(record))

    deps: Dict[str, Tuple[str, ...]] = {}
    for decl in registry.list():
        for ref in decl.command.refs:
            if ref not in registry:
                raise UnknownReferenceError(
                    message=f"Target '{decl.name}' referencia target inexistente '{ref}'",
                    details={"target": decl.name, "reference": ref},
                    hint="Declare o target referenciado ou corrija o nome do parâmetro.",
                )
        if decl.dynamic is not None:
            _validate_dynamic(decl, registry)
        deps[decl.name] = _dependencies(decl)

    cycle = find_cycle(deps)
    if cycle is not None:
        raise CycleDetectedError(
            message="Ciclo detectado no grafo de dependências: " + " -> ".join(cycle),
            details={"cycle": cycle},
            hint="Remova a referência circular entre os targets listados.",
        )

    return CompiledPlan(
        targets=tuple(registry.list()),
        deps=deps,
        order=tuple(topological_order(deps)),
    )
