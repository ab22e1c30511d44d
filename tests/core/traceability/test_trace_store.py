# tests/core/traceability/test_trace_store.py
"""
Testes do Trace Store.

Invariantes:
    - Leitura devolve valores alinhados à ordem pedida
    - Trace desconhecido levanta KeyError
    - Arquivo de trace ilegível é CacheCorruptionError
"""

from types import SimpleNamespace

import pytest

from atlas_targets.core.cache.store import open_store
from atlas_targets.core.exceptions import CacheCorruptionError
from atlas_targets.core.traceability import TraceStore
from atlas_targets.core.traceability.trace_store import collect


@pytest.fixture
def traces(tmp_path):
    return TraceStore(open_store(tmp_path / "store"))


def test_collect_pivots_by_trace_name():
    children = [
        SimpleNamespace(name="m_1", trace={"cidade": "SP", "ano": 2020}),
        SimpleNamespace(name="m_2", trace={"cidade": "RJ", "ano": 2021}),
    ]

    assert collect(children) == {
        "cidade": {"m_1": "SP", "m_2": "RJ"},
        "ano": {"m_1": 2020, "m_2": 2021},
    }


def test_write_and_read_in_generation_order(traces):
    traces.write("m", {"cidade": {"m_1": "SP", "m_2": "RJ"}})

    assert traces.read("cidade", "m", ["m_2", "m_1"]) == ["RJ", "SP"]
    assert traces.names("m") == ["cidade"]


def test_write_replaces_previous_records(traces):
    traces.write("m", {"a": {"m_1": 1}})
    traces.write("m", {"b": {"m_1": 2}})

    assert traces.names("m") == ["b"]


def test_identical_records_are_not_rewritten(traces):
    assert traces.write("m", {"cidade": {"m_1": "SP"}}) is True
    before = traces.store.trace_path("m").read_bytes()

    assert traces.write("m", {"cidade": {"m_1": "SP"}}) is False
    assert traces.write("m", {"cidade": {"m_1": "RJ"}}) is True
    assert traces.store.trace_path("m").read_bytes() != before


def test_unknown_trace_raises_key_error(traces):
    traces.write("m", {"cidade": {"m_1": "SP"}})

    with pytest.raises(KeyError):
        traces.read("estado", "m", ["m_1"])
    with pytest.raises(KeyError):
        traces.read("cidade", "sem_trace", [])


def test_missing_target_has_no_traces(traces):
    assert traces.load("nada") == {}


def test_unreadable_trace_is_corruption(traces):
    traces.store.trace_path("m").write_bytes(b"nao e joblib")

    with pytest.raises(CacheCorruptionError):
        traces.load("m")
