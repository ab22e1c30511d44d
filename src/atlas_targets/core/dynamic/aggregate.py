"""
Agregação de sub-targets.

Modos de leitura de um target dinâmico:
    - aggregate: concatena os valores dos sub-targets em ordem de geração;
      todos devem compartilhar o mesmo tipo estrutural
    - list: mapeamento `{sub_target_id: valor}`, para valores que não são
      uniformemente concatenáveis
"""

from __future__ import annotations

from typing import Any, Dict, Sequence

from atlas_targets.core import values as V
from atlas_targets.core.exceptions import ExpansionError


AGGREGATE = "aggregate"
LIST = "list"
READ_MODES = (AGGREGATE, LIST)


def aggregate(target: str, values: Sequence[Any]) -> Any:
    """Concatena `values`; tipos estruturais divergentes levantam ExpansionError."""
    if not values:
        return []

    kinds = []
    for v in values:
        kind = V.structural_type(v)
        if kind not in kinds:
            kinds.append(kind)
    if len(kinds) > 1:
        raise ExpansionError(
            message=f"Sub-targets de '{target}' têm tipos estruturais diferentes",
            details={"target": target, "types": [repr(k) for k in kinds]},
            hint="Leia com mode='list' ou faça os sub-targets retornarem o mesmo tipo.",
        )

    try:
        return V.concat(list(values))
    except Exception as e:
        raise ExpansionError(
            message=f"Falha ao concatenar sub-targets de '{target}'",
            details={"target": target, "exception_class": e.__class__.__name__, "reason": str(e)},
        ) from e


def as_mapping(names: Sequence[str], values: Sequence[Any]) -> Dict[str, Any]:
    return dict(zip(names, values))


def element_count(value: Any) -> int:
    return V.slice_count(value)
