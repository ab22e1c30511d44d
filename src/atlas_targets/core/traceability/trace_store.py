"""
Trace Store do Atlas Targets.

Índice lateral que registra, por target dinâmico, o valor de cada expressão
de trace para cada sub-target materializado:

    trace/<target_id>.joblib  →  {trace_name: {sub_target_id: valor}}

Traces são gravados no momento da expansão, independentemente de o
sub-target ser reconstruído ou vir do cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import joblib

from atlas_targets.core.cache.store import CacheStore, atomic_dump
from atlas_targets.core.exceptions import CacheCorruptionError


TraceRecords = Dict[str, Dict[str, Any]]


@dataclass
class TraceStore:
    store: CacheStore

    def write(self, target_id: str, records: TraceRecords) -> bool:
        """
        Substitui os traces de `target_id` (stage-then-commit).

        Registros idênticos aos persistidos não são regravados.

        Returns:
            bool: True se o arquivo foi escrito.
        """
        data = {k: dict(v) for k, v in records.items()}
        try:
            unchanged = joblib.hash(self.load(target_id)) == joblib.hash(data)
        except CacheCorruptionError:
            unchanged = False
        if unchanged and self.store.trace_path(target_id).exists():
            return False
        atomic_dump(data, self.store.trace_path(target_id))
        return True

    def load(self, target_id: str) -> TraceRecords:
        path = self.store.trace_path(target_id)
        if not path.exists():
            return {}
        try:
            data = joblib.load(path)
        except Exception as e:
            raise CacheCorruptionError(
                message=f"Trace ilegível para '{target_id}'",
                details={"target_id": target_id, "path": str(path), "reason": e.__class__.__name__},
            ) from e
        if not isinstance(data, dict):
            raise CacheCorruptionError(
                message=f"Trace inconsistente para '{target_id}'",
                details={"target_id": target_id, "received": type(data).__name__},
            )
        return data

    def read(self, trace_name: str, target_id: str, order: Sequence[str]) -> List[Any]:
        """
        Valores de `trace_name` alinhados à ordem de geração `order`.

        Raises:
            KeyError: trace desconhecido ou sub-target sem registro.
        """
        records = self.load(target_id)
        if trace_name not in records:
            raise KeyError(trace_name)
        by_child = records[trace_name]
        return [by_child[child] for child in order]

    def names(self, target_id: str) -> List[str]:
        return sorted(self.load(target_id))


def collect(children: Sequence[Any]) -> TraceRecords:
    """Reorganiza `{sub_id: {trace: valor}}` em `{trace: {sub_id: valor}}`."""
    out: TraceRecords = {}
    for child in children:
        for trace_name, value in child.trace.items():
            out.setdefault(trace_name, {})[child.name] = value
    return out
