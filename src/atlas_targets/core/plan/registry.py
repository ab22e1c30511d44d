"""
Registro estrutural de targets do plano.

O `TargetRegistry` é a primeira barreira do Plan Compiler: garante que cada
target possua um nome válido e único e preserva a ordem de declaração.

Invariantes:
    - Cada target registrado possui um nome único
    - A lista de targets reflete exatamente a ordem de registro
    - Nenhum target inválido é aceito
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List

from atlas_targets.core.exceptions import DuplicateTargetError, InvalidPlanError

from .types import TargetDecl


# Nomes viram nomes de arquivo no store e prefixo de sub-targets.
TARGET_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


@dataclass
class TargetRegistry:
    """Registro canônico de targets para validação estrutural pré-compilação."""

    _targets: Dict[str, TargetDecl] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    def add(self, decl: TargetDecl) -> None:
        name = decl.name
        if not isinstance(name, str) or not TARGET_NAME_PATTERN.match(name):
            raise InvalidPlanError(
                message=f"Nome de target inválido: {name!r}",
                details={"name": repr(name), "pattern": TARGET_NAME_PATTERN.pattern},
                hint="Use letras, dígitos, '_', '.' ou '-', começando por letra ou '_'.",
            )

        if name in self._targets:
            raise DuplicateTargetError(
                message=f"Target duplicado: {name}",
                details={"name": name},
                hint="Cada target deve ser declarado uma única vez no plano.",
            )

        self._targets[name] = decl
        self._order.append(name)

    def get(self, name: str) -> TargetDecl:
        return self._targets[name]

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def names(self) -> List[str]:
        return list(self._order)

    def list(self) -> List[TargetDecl]:
        return [self._targets[n] for n in self._order]
