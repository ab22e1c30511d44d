# tests/core/values/test_values.py
"""
Testes da capacidade de fatiamento de valores (`atlas_targets.core.values`).

Invariantes:
    - `concat(slices(v))` reconstrói `v` para os adapters padrão
    - fatias têm exatamente um elemento e o mesmo tipo do valor original
    - valores não fatiáveis contam como um único elemento (escalar)

Limites explícitos:
    - Não valida agregação de sub-targets (ver tests/core/dynamic)
"""

import numpy as np
import pandas as pd
import pytest

from atlas_targets.core import values as V


def test_list_slices_and_concat():
    value = [3, 1, 2]

    parts = V.slices(value)

    assert parts == [[3], [1], [2]]
    assert V.concat(parts) == value
    assert V.slice_count(value) == 3


def test_tuple_is_sliced_like_a_list():
    assert V.slices(("a", "b")) == [["a"], ["b"]]


def test_dataframe_slices_keep_columns():
    df = pd.DataFrame({"id": [1, 2, 3], "score": [0.1, 0.2, 0.3]})

    parts = V.slices(df)

    assert len(parts) == 3
    assert all(isinstance(p, pd.DataFrame) and len(p) == 1 for p in parts)
    pd.testing.assert_frame_equal(V.concat(parts), df)


def test_series_and_array_roundtrip():
    s = pd.Series([1.0, 2.0], name="x")
    arr = np.arange(6).reshape(3, 2)

    pd.testing.assert_series_equal(V.concat(V.slices(s)), s)
    np.testing.assert_array_equal(V.concat(V.slices(arr)), arr)
    assert V.slices(arr)[1].shape == (1, 2)


def test_zero_dim_array_is_one_element():
    arr = np.array(5)

    assert V.slice_count(arr) == 1
    assert V.slice_value(arr, 0).shape == (1,)


def test_scalar_is_single_element():
    """
    Escalares contam como um elemento; concat de escalares vira lista.
    """
    assert V.slice_count(42) == 1
    assert V.slices("abc") == ["abc"]
    assert V.concat([1, 2]) == [1, 2]
    with pytest.raises(IndexError):
        V.slice_value(42, 1)


def test_concat_of_nothing_is_empty_list():
    assert V.concat([]) == []


def test_unwrap():
    """
    `unwrap` devolve o elemento de uma fatia unitária.

    Casos cobertos:
        - list/ndarray/Series unitários → elemento
        - DataFrame → inalterado (frame de uma linha)
        - valores com mais de um elemento → inalterados
    """
    df = pd.DataFrame({"a": [1]})

    assert V.unwrap([7]) == 7
    assert V.unwrap(np.array([4])) == 4
    assert V.unwrap(np.array(9)) == 9
    assert V.unwrap(pd.Series(["k"])) == "k"
    assert V.unwrap(df) is df
    assert V.unwrap([1, 2]) == [1, 2]
    assert V.unwrap("texto") == "texto"


def test_structural_type():
    df_a = pd.DataFrame({"a": [1]})
    df_b = pd.DataFrame({"b": [1]})

    assert V.structural_type([1]) == V.structural_type(["x", "y"])
    assert V.structural_type(df_a) != V.structural_type(df_b)
    assert V.structural_type(np.zeros((2, 3))) != V.structural_type(np.zeros((2, 4)))
    assert V.structural_type(1) == V.structural_type(2.5)
    assert V.structural_type(1) != V.structural_type("1")
    assert V.structural_type([1]) != V.structural_type(np.array([1]))


class _Bag:
    def __init__(self, items):
        self.items = list(items)


class _BagAdapter:
    name = "Bag"

    def slice_count(self, value):
        return len(value.items)

    def slice(self, value, index):
        return _Bag([value.items[index]])

    def concat(self, values):
        return _Bag([i for v in values for i in v.items])


def test_register_adapter_takes_precedence():
    V.register_adapter(_Bag, _BagAdapter())

    bag = _Bag("abc")
    parts = V.slices(bag)

    assert [p.items for p in parts] == [["a"], ["b"], ["c"]]
    assert V.concat(parts).items == ["a", "b", "c"]


def test_register_adapter_requires_capability():
    with pytest.raises(TypeError):
        V.register_adapter(_Bag, object())
