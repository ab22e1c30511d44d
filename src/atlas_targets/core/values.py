"""
Capacidade de fatiamento (slicing) de valores.

Todo valor que participa de branching dinâmico precisa satisfazer uma
capacidade estreita:

    slice_count(value) -> int          número de elementos
    slice(value, i)    -> value        fatia de tamanho 1, do mesmo tipo
    concat(values)     -> value        concatenação de valores inteiros

`concat` junta valores completos (a contagem de elementos do resultado é a
soma das contagens), de modo que `concat([slice(v, i) for i in ...])`
reconstrói `v`.

Adapters padrão:
    - list / tuple        → fatia `[v[i]]`, concat encadeia em list
    - pandas.DataFrame    → fatia `iloc[[i]]`, concat via `pd.concat`
    - pandas.Series       → fatia `iloc[[i]]`, concat via `pd.concat`
    - numpy.ndarray       → fatia `v[i:i+1]`, concat via `np.concatenate`
    - demais valores      → escalares (1 elemento); concat produz list

Tipos adicionais podem ser registrados com `register_adapter`.
"""

from __future__ import annotations

import numbers
from typing import Any, Hashable, List, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import pandas as pd


@runtime_checkable
class SliceAdapter(Protocol):
    """Contrato mínimo de fatiamento para um tipo de valor."""

    name: str

    def slice_count(self, value: Any) -> int:
        ...

    def slice(self, value: Any, index: int) -> Any:
        ...

    def concat(self, values: Sequence[Any]) -> Any:
        ...


class SequenceAdapter:
    name = "list"

    def slice_count(self, value: Any) -> int:
        return len(value)

    def slice(self, value: Any, index: int) -> Any:
        return [value[index]]

    def concat(self, values: Sequence[Any]) -> Any:
        out: List[Any] = []
        for v in values:
            out.extend(v)
        return out


class DataFrameAdapter:
    name = "DataFrame"

    def slice_count(self, value: Any) -> int:
        return len(value.index)

    def slice(self, value: Any, index: int) -> Any:
        return value.iloc[[index]]

    def concat(self, values: Sequence[Any]) -> Any:
        if not values:
            return pd.DataFrame()
        return pd.concat(list(values))


class SeriesAdapter:
    name = "Series"

    def slice_count(self, value: Any) -> int:
        return len(value.index)

    def slice(self, value: Any, index: int) -> Any:
        return value.iloc[[index]]

    def concat(self, values: Sequence[Any]) -> Any:
        if not values:
            return pd.Series(dtype=object)
        return pd.concat(list(values))


class ArrayAdapter:
    name = "ndarray"

    def slice_count(self, value: Any) -> int:
        return int(value.shape[0]) if value.ndim else 1

    def slice(self, value: Any, index: int) -> Any:
        if not value.ndim:
            return value.reshape(1)
        return value[index:index + 1]

    def concat(self, values: Sequence[Any]) -> Any:
        if not values:
            return np.array([])
        return np.concatenate([np.atleast_1d(v) for v in values], axis=0)


class ScalarAdapter:
    """Fallback: qualquer valor não fatiável conta como um único elemento."""

    name = "scalar"

    def slice_count(self, value: Any) -> int:
        return 1

    def slice(self, value: Any, index: int) -> Any:
        if index != 0:
            raise IndexError(index)
        return value

    def concat(self, values: Sequence[Any]) -> Any:
        return list(values)


_SCALAR = ScalarAdapter()

# Ordem importa: o primeiro isinstance() que casar vence.
_ADAPTERS: List[Tuple[type, SliceAdapter]] = [
    (pd.DataFrame, DataFrameAdapter()),
    (pd.Series, SeriesAdapter()),
    (np.ndarray, ArrayAdapter()),
    (list, SequenceAdapter()),
    (tuple, SequenceAdapter()),
]


def register_adapter(value_type: type, adapter: SliceAdapter) -> None:
    """Registra um adapter com precedência sobre os padrões."""
    if not isinstance(adapter, SliceAdapter):
        raise TypeError(f"adapter deve satisfazer SliceAdapter, recebido: {type(adapter).__name__}")
    _ADAPTERS.insert(0, (value_type, adapter))


def adapter_for(value: Any) -> SliceAdapter:
    for value_type, adapter in _ADAPTERS:
        if isinstance(value, value_type):
            return adapter
    return _SCALAR


def slice_count(value: Any) -> int:
    return adapter_for(value).slice_count(value)


def slice_value(value: Any, index: int) -> Any:
    return adapter_for(value).slice(value, index)


def slices(value: Any) -> List[Any]:
    adapter = adapter_for(value)
    return [adapter.slice(value, i) for i in range(adapter.slice_count(value))]


def concat(values: Sequence[Any]) -> Any:
    """Concatena valores que já compartilham o mesmo tipo estrutural."""
    if not values:
        return []
    return adapter_for(values[0]).concat(values)


def unwrap(value: Any) -> Any:
    """Elemento único de uma fatia de tamanho 1; demais valores inalterados.

    DataFrames permanecem como frame de uma linha.
    """
    adapter = adapter_for(value)
    if isinstance(adapter, (ScalarAdapter, DataFrameAdapter)) or adapter.slice_count(value) != 1:
        return value
    if isinstance(adapter, SeriesAdapter):
        return value.iloc[0]
    if isinstance(adapter, ArrayAdapter) and not value.ndim:
        return value[()]
    return value[0]


def structural_type(value: Any) -> Hashable:
    """Assinatura estrutural usada na checagem de agregação.

    Valores com assinaturas diferentes não podem ser concatenados.
    """
    adapter = adapter_for(value)
    if isinstance(adapter, DataFrameAdapter):
        return ("DataFrame", tuple(str(c) for c in value.columns))
    if isinstance(adapter, ArrayAdapter):
        return ("ndarray", tuple(value.shape[1:]))
    if isinstance(adapter, ScalarAdapter):
        if isinstance(value, numbers.Number):
            return ("scalar", "number")
        return ("scalar", type(value).__name__)
    return (adapter.name,)
