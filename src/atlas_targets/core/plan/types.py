"""
Tipos canônicos do plano do Atlas Targets.

Este módulo define as estruturas e enums que padronizam a comunicação entre
Plan Compiler, Dependency Graph, Dynamic Expander e Scheduler.

Componentes principais:
    - DynamicOp    → operações de branching dinâmico (map, cross, group)
    - TargetKind   → natureza do nó no grafo (static, dynamic, subtarget)
    - TargetStatus → estados do ciclo de vida de um target em uma run
    - DynamicSpec  → especificação imutável de expansão dinâmica
    - TargetDecl   → declaração imutável de um target no plano

Invariantes:
    - Enums possuem valores textuais canônicos (serializáveis em JSON)
    - Declarações são imutáveis após a normalização pelo compiler
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Union

from .command import Command


class DynamicOp(str, Enum):
    """Operações suportadas de branching dinâmico."""

    MAP = "map"
    CROSS = "cross"
    GROUP = "group"


class TargetKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    SUBTARGET = "subtarget"


class TargetStatus(str, Enum):
    """
    Estados de um target durante uma run.

    Máquina de estados:
        not_built → running → {up_to_date | built | errored}
        not_built → {up_to_date | blocked | errored}

    Estados terminais:
        - UP_TO_DATE: cache hit, comando não executado
        - BUILT: comando executado com sucesso nesta run
        - ERRORED: comando (ou expansão) falhou
        - BLOCKED: alguma dependência transitiva falhou
    """

    NOT_BUILT = "not_built"
    RUNNING = "running"
    UP_TO_DATE = "up_to_date"
    BUILT = "built"
    ERRORED = "errored"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_success(self) -> bool:
        return self in (TargetStatus.UP_TO_DATE, TargetStatus.BUILT)

    @property
    def is_failure(self) -> bool:
        return self in (TargetStatus.ERRORED, TargetStatus.BLOCKED)


_TERMINAL = frozenset(
    {TargetStatus.UP_TO_DATE, TargetStatus.BUILT, TargetStatus.ERRORED, TargetStatus.BLOCKED}
)


# `by` de um group: nome de target co-fatiado ou função aplicada a cada fatia.
KeyExpr = Union[str, Callable[[Any], Any]]

# Expressão de trace: nome de target (source ou `by`) ou função sobre os inputs.
TraceExpr = Union[str, Callable[..., Any]]


@dataclass(frozen=True)
class DynamicSpec:
    """
    Especificação de expansão dinâmica de um target.

    Campos:
        - op: operação (map, cross, group)
        - sources: targets fatiados, em ordem
        - by: chave de agrupamento (apenas group)
        - trace: pares (trace_name, expressão) registrados por sub-target
        - max_expand: cap de sub-targets materializados por run
    """

    op: DynamicOp
    sources: Tuple[str, ...]
    by: Optional[KeyExpr] = None
    trace: Tuple[Tuple[str, TraceExpr], ...] = ()
    max_expand: Optional[Any] = None

    @property
    def by_target(self) -> Optional[str]:
        return self.by if isinstance(self.by, str) else None


@dataclass(frozen=True)
class TargetDecl:
    """Declaração normalizada de um target."""

    name: str
    command: Command
    dynamic: Optional[DynamicSpec] = None

    @property
    def kind(self) -> TargetKind:
        return TargetKind.DYNAMIC if self.dynamic is not None else TargetKind.STATIC


# ---------------------------------------------------------------------------
# Helpers de declaração
# ---------------------------------------------------------------------------

def map_over(*sources: str, trace: Any = None, max_expand: Optional[int] = None) -> DynamicSpec:
    """Um sub-target por fatia; fontes com mesma contagem (ou unitárias)."""
    return DynamicSpec(op=DynamicOp.MAP, sources=tuple(sources), trace=normalize_trace(trace), max_expand=max_expand)


def cross_over(*sources: str, trace: Any = None, max_expand: Optional[int] = None) -> DynamicSpec:
    """Um sub-target por combinação; a primeira fonte varia mais devagar."""
    return DynamicSpec(op=DynamicOp.CROSS, sources=tuple(sources), trace=normalize_trace(trace), max_expand=max_expand)


def group_by(source: str, *, by: KeyExpr, trace: Any = None, max_expand: Optional[int] = None) -> DynamicSpec:
    """Um sub-target por valor distinto da chave."""
    return DynamicSpec(
        op=DynamicOp.GROUP,
        sources=(source,),
        by=by,
        trace=normalize_trace(trace),
        max_expand=max_expand,
    )


def target(
    name: str,
    command: Union[Command, Callable[..., Any]],
    dynamic: Optional[DynamicSpec] = None,
    *,
    refs: Optional[Tuple[str, ...]] = None,
    watch: Tuple[str, ...] = (),
) -> TargetDecl:
    """Atalho para declarar um target a partir de uma função."""
    if not isinstance(command, Command):
        command = Command.from_callable(command, refs=refs, watch=watch)
    return TargetDecl(name=name, command=command, dynamic=dynamic)


def normalize_trace(trace: Any) -> Tuple[Tuple[str, TraceExpr], ...]:
    """Normaliza `trace` para uma tupla de pares (trace_name, expressão).

    Aceita:
        - None
        - nome de target (str)
        - lista de nomes de targets
        - mapping {trace_name: nome ou função}
    """
    if trace is None:
        return ()
    if isinstance(trace, str):
        return ((trace, trace),)
    if isinstance(trace, dict):
        return tuple((str(k), v) for k, v in trace.items())
    if isinstance(trace, (list, tuple)):
        out = []
        for item in trace:
            if not isinstance(item, str):
                raise TypeError(f"trace em lista deve conter nomes de targets, recebido: {type(item).__name__}")
            out.append((item, item))
        return tuple(out)
    raise TypeError(f"trace inválido: {type(trace).__name__}")
