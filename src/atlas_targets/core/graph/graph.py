"""
Dependency Graph do Atlas Targets.

Arena de nós indexados por id inteiro estável, com índice nome → id e
listas de adjacência nos dois sentidos. O grafo nasce do `CompiledPlan`
(nós estáticos e dinâmicos) e cresce em runtime com sub-targets inseridos
pelo Dynamic Expander.

Arestas vão da dependência para o dependente:
    - `dep → target` para cada referência do comando e fonte dinâmica
    - `fonte → sub-target` e `sub-target → pai` após a expansão

Um target dinâmico depende, portanto, dos seus sub-targets materializados:
só fica pronto para resolução quando todos eles são terminais.

Decisões arquiteturais:
    - Prontidão é recalculada do zero a cada consulta; nenhum iterador é
      mantido através de mutações
    - Toda transição de status passa por `transition`, sob o lock do grafo
    - Ordem topológica determinística (Kahn, empates lexicográficos)

Limites explícitos:
    - Não executa comandos
    - Não consulta o cache
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from atlas_targets.core.errors import AtlasErrorPayload
from atlas_targets.core.exceptions import IllegalTransitionError
from atlas_targets.core.plan.compiler import CompiledPlan, topological_order
from atlas_targets.core.plan.types import TargetDecl, TargetKind, TargetStatus


_ALLOWED = {
    TargetStatus.NOT_BUILT: frozenset(
        {TargetStatus.RUNNING, TargetStatus.UP_TO_DATE, TargetStatus.BLOCKED, TargetStatus.ERRORED}
    ),
    TargetStatus.RUNNING: frozenset({TargetStatus.UP_TO_DATE, TargetStatus.BUILT, TargetStatus.ERRORED}),
}


@dataclass
class Node:
    """Nó do grafo (target estático, dinâmico ou sub-target)."""

    id: int
    name: str
    kind: TargetKind
    status: TargetStatus = TargetStatus.NOT_BUILT
    decl: Optional[TargetDecl] = None
    parent: Optional[str] = None
    index: Optional[int] = None
    binding: Any = None
    expanded: bool = False
    fingerprint: Optional[str] = None
    value_digest: Optional[str] = None
    error: Optional[AtlasErrorPayload] = None


@dataclass
class DependencyGraph:
    _nodes: List[Node] = field(default_factory=list, init=False, repr=False)
    _index: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _deps: List[List[int]] = field(default_factory=list, init=False, repr=False)
    _dependents: List[List[int]] = field(default_factory=list, init=False, repr=False)
    lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @classmethod
    def from_plan(cls, plan: CompiledPlan) -> "DependencyGraph":
        graph = cls()
        for decl in plan.targets:
            graph.add_node(decl.name, decl.kind, decl=decl)
        for name in plan.order:
            for dep in plan.deps[name]:
                graph.add_edge(dep, name)
        return graph

    # ------------------------------------------------------------------
    # Construção
    # ------------------------------------------------------------------
    def add_node(self, name: str, kind: TargetKind, **attrs: Any) -> Node:
        with self.lock:
            if name in self._index:
                raise ValueError(f"Nó duplicado no grafo: {name}")
            node = Node(id=len(self._nodes), name=name, kind=kind, **attrs)
            self._nodes.append(node)
            self._deps.append([])
            self._dependents.append([])
            self._index[name] = node.id
            return node

    def add_edge(self, dep: str, dependent: str) -> None:
        with self.lock:
            a = self._index[dep]
            b = self._index[dependent]
            if a not in self._deps[b]:
                self._deps[b].append(a)
                self._dependents[a].append(b)

    def insert_subtargets(self, parent: str, children: Sequence[Tuple[str, int, Any, Sequence[str]]]) -> List[Node]:
        """
        Insere sub-targets materializados de `parent`.

        Cada filho é `(nome, índice, binding, deps)`; `deps` são as fontes
        ligadas ao filho. Os novos nós entram no cálculo de prontidão
        imediatamente; nós existentes não são reordenados.

        A inserção é tudo-ou-nada: nomes em colisão ou dependências
        desconhecidas são rejeitados antes de qualquer nó entrar no grafo.
        """
        created: List[Node] = []
        with self.lock:
            parent_node = self.node(parent)
            seen = set()
            for name, _, _, deps in children:
                if name in self._index or name in seen:
                    raise ValueError(f"Nó duplicado no grafo: {name}")
                seen.add(name)
                missing = [d for d in deps if d not in self._index]
                if missing:
                    raise KeyError(f"Dependências desconhecidas para '{name}': {missing}")
            for name, index, binding, deps in children:
                node = self.add_node(
                    name,
                    TargetKind.SUBTARGET,
                    decl=parent_node.decl,
                    parent=parent,
                    index=index,
                    binding=binding,
                )
                for dep in deps:
                    self.add_edge(dep, name)
                self.add_edge(name, parent)
                created.append(node)
            parent_node.expanded = True
        return created

    # ------------------------------------------------------------------
    # Consulta
    # ------------------------------------------------------------------
    def node(self, name: str) -> Node:
        return self._nodes[self._index[name]]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes(self) -> List[Node]:
        return list(self._nodes)

    def dependencies(self, name: str) -> List[str]:
        return [self._nodes[i].name for i in self._deps[self._index[name]]]

    def dependents(self, name: str) -> List[str]:
        return [self._nodes[i].name for i in self._dependents[self._index[name]]]

    def subtargets(self, parent: str) -> List[str]:
        """Sub-targets materializados de `parent`, em ordem de geração."""
        with self.lock:
            children = [n for n in self._nodes if n.parent == parent]
        return [n.name for n in sorted(children, key=lambda n: n.index)]

    def topological_order(self) -> List[str]:
        with self.lock:
            deps = {n.name: self.dependencies(n.name) for n in self._nodes}
        return topological_order(deps)

    def ready(self) -> List[str]:
        """Nós `not_built` cujas dependências terminaram com sucesso."""
        with self.lock:
            out = []
            for node in self._nodes:
                if node.status is not TargetStatus.NOT_BUILT:
                    continue
                if all(self._nodes[d].status.is_success for d in self._deps[node.id]):
                    out.append(node.name)
            return sorted(out)

    def blocked_candidates(self) -> List[Tuple[str, str]]:
        """Nós `not_built` com alguma dependência em falha: `(nome, dependência)`."""
        with self.lock:
            out = []
            for node in self._nodes:
                if node.status is not TargetStatus.NOT_BUILT:
                    continue
                for d in self._deps[node.id]:
                    if self._nodes[d].status.is_failure:
                        out.append((node.name, self._nodes[d].name))
                        break
            return out

    def pending(self) -> List[str]:
        with self.lock:
            return [n.name for n in self._nodes if not n.status.is_terminal]

    def descendants(self, name: str) -> List[str]:
        with self.lock:
            seen = set()
            stack = [self._index[name]]
            while stack:
                for child in self._dependents[stack.pop()]:
                    if child not in seen:
                        seen.add(child)
                        stack.append(child)
            return sorted(self._nodes[i].name for i in seen)

    # ------------------------------------------------------------------
    # Mutação de status
    # ------------------------------------------------------------------
    def transition(self, name: str, status: TargetStatus) -> Node:
        """Aplica uma transição validada pela máquina de estados."""
        with self.lock:
            node = self.node(name)
            allowed = _ALLOWED.get(node.status, frozenset())
            if status not in allowed:
                raise IllegalTransitionError(
                    message=f"Transição inválida para '{name}': {node.status.value} -> {status.value}",
                    details={"target": name, "from": node.status.value, "to": status.value},
                )
            node.status = status
            return node

    @staticmethod
    def is_outdated(entry: Any, fingerprint: str) -> bool:
        """Um target está desatualizado sem entrada ou com fingerprint diferente."""
        return entry is None or entry.fingerprint != fingerprint

    def statuses(self) -> Dict[str, TargetStatus]:
        with self.lock:
            return {n.name: n.status for n in self._nodes}

    def info(self) -> Dict[str, List[Dict[str, Any]]]:
        """Snapshot para renderizadores externos."""
        with self.lock:
            nodes = [{"id": n.name, "kind": n.kind.value, "status": n.status.value} for n in self._nodes]
            edges = [
                {"from": self._nodes[d].name, "to": n.name}
                for n in self._nodes
                for d in self._deps[n.id]
            ]
        return {"nodes": nodes, "edges": edges}


def build_graph(plan: CompiledPlan) -> DependencyGraph:
    return DependencyGraph.from_plan(plan)
