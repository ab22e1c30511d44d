# tests/core/dynamic/test_aggregate.py
"""
Testes da agregação de sub-targets.

Invariantes:
    - A agregação concatena em ordem de geração
    - A contagem de elementos do agregado é a soma das contagens
    - Tipos estruturais divergentes levantam ExpansionError
"""

import numpy as np
import pandas as pd
import pytest

from atlas_targets.core.dynamic import aggregate, as_mapping, element_count
from atlas_targets.core.exceptions import ExpansionError


def test_aggregate_lists_in_order():
    assert aggregate("m", [[1], [2, 3], []]) == [1, 2, 3]


def test_aggregate_scalars_become_list():
    assert aggregate("m", [1, 2.5, 3]) == [1, 2.5, 3]


def test_aggregate_of_nothing_is_empty_list():
    assert aggregate("m", []) == []


def test_aggregate_dataframes_element_count():
    parts = [pd.DataFrame({"a": [i, i + 1]}) for i in range(3)]

    out = aggregate("m", parts)

    assert isinstance(out, pd.DataFrame)
    assert element_count(out) == sum(element_count(p) for p in parts) == 6
    assert out["a"].tolist() == [0, 1, 1, 2, 2, 3]


def test_aggregate_arrays():
    out = aggregate("m", [np.zeros((1, 2)), np.ones((2, 2))])

    assert out.shape == (3, 2)


def test_mismatched_structural_types_raise():
    """
    Sub-targets com tipos diferentes não são concatenados silenciosamente.

    Casos cobertos:
        - DataFrame com colunas diferentes
        - lista misturada com DataFrame
    """
    with pytest.raises(ExpansionError):
        aggregate("m", [pd.DataFrame({"a": [1]}), pd.DataFrame({"b": [1]})])

    with pytest.raises(ExpansionError) as exc:
        aggregate("m", [[1], pd.DataFrame({"a": [1]})])

    assert exc.value.details["target"] == "m"


def test_as_mapping_keeps_generation_order():
    mapping = as_mapping(["m_b", "m_a"], [2, 1])

    assert list(mapping) == ["m_b", "m_a"]
    assert mapping == {"m_a": 1, "m_b": 2}
