"""
RunReport v1 — resultado agregado de uma run.

`run()` nunca levanta exceção por falha de target: erros de execução e de
expansão são capturados como `AtlasErrorPayload` e agregados aqui.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from atlas_targets.core.errors import AtlasErrorPayload
from atlas_targets.core.plan.types import TargetStatus


@dataclass(frozen=True)
class TargetOutcome:
    """Status final de um target (ou sub-target) na run."""

    target_id: str
    kind: str
    status: TargetStatus
    parent: Optional[str] = None
    error: Optional[AtlasErrorPayload] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "kind": self.kind,
            "status": self.status.value,
            "parent": self.parent,
            "error": self.error.to_dict() if self.error is not None else None,
        }


@dataclass(frozen=True)
class RunReport:
    """
    Resultado agregado de uma run.

    Campos:
        - run_id: identificador da run
        - targets: desfecho por target_id (inclui sub-targets materializados)
        - errors: erros de execução/expansão, na ordem em que ocorreram
        - warnings: warnings não fatais por target_id (ex.: cache corrompido)
        - executed: targets cujo comando rodou nesta run, em ordem de conclusão
        - truncated: targets dinâmicos truncados por `max_expand`
    """

    run_id: str
    targets: Dict[str, TargetOutcome] = field(default_factory=dict)
    errors: List[AtlasErrorPayload] = field(default_factory=list)
    warnings: Dict[str, List[str]] = field(default_factory=dict)
    executed: List[str] = field(default_factory=list)
    truncated: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not any(o.status.is_failure for o in self.targets.values())

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def status(self, target_id: str) -> TargetStatus:
        return self.targets[target_id].status

    def with_status(self, status: TargetStatus) -> List[str]:
        return sorted(t for t, o in self.targets.items() if o.status is status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "ok": self.ok,
            "exit_code": self.exit_code,
            "targets": {k: v.to_dict() for k, v in self.targets.items()},
            "errors": [e.to_dict() for e in self.errors],
            "warnings": {k: list(v) for k, v in self.warnings.items()},
            "executed": list(self.executed),
            "truncated": {k: dict(v) for k, v in self.truncated.items()},
        }
