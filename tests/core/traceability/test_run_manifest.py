# tests/core/traceability/test_run_manifest.py
"""
Testes do Manifest de runs (Manifest v1).

Os testes asseguram que:
- o Manifest inicial não contém eventos implícitos
- cada helper de ciclo de vida adiciona exatamente um evento
- a duração é calculada apenas quando houve início registrado
- o Manifest persistido é JSON determinístico e recarregável

Decisões arquiteturais:
    - Timestamps são sempre UTC com timezone explícito
    - O Manifest é persistido pela API, não pelo scheduler
"""

import json
from datetime import datetime, timedelta, timezone

from atlas_targets.core.traceability import manifest as M


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _manifest():
    return M.create_manifest(
        run_id="run-1",
        started_at=T0,
        atlas_version="0.1.0",
        config_hash="c" * 64,
        plan_hash="p" * 64,
    )


def test_create_manifest_has_no_events():
    m = _manifest()

    assert m.events == []
    assert m.targets == {}
    assert m.run["run_id"] == "run-1"
    assert m.run["started_at"].endswith("+00:00")
    assert m.inputs == {"config_hash": "c" * 64, "plan_hash": "p" * 64}


def test_naive_datetime_is_treated_as_utc():
    m = M.create_manifest(
        run_id="r", started_at=datetime(2024, 1, 1), atlas_version="0.1.0", config_hash="c", plan_hash="p"
    )

    assert m.run["started_at"] == "2024-01-01T00:00:00+00:00"


def test_lifecycle_events_and_duration():
    """
    started → finished produz dois eventos e `duration_ms`.

    Invariantes:
        - `status` final reflete o último helper chamado
        - `duration_ms` é a diferença em milissegundos
    """
    m = _manifest()

    M.target_started(m, target_id="data", kind="static", ts=T0)
    M.target_finished(m, target_id="data", kind="static", status="built", ts=T0 + timedelta(milliseconds=250), fingerprint="f")

    assert [e["event_type"] for e in m.events] == ["target_started", "target_finished"]
    assert m.targets["data"]["status"] == "built"
    assert m.targets["data"]["duration_ms"] == 250
    assert m.targets["data"]["fingerprint"] == "f"


def test_cache_hit_has_no_duration():
    m = _manifest()

    M.target_finished(m, target_id="data", kind="static", status="up_to_date", ts=T0)

    assert "duration_ms" not in m.targets["data"]
    assert m.events_of("target_finished")[0]["payload"] == {"status": "up_to_date"}


def test_failure_block_expansion_and_warning_events():
    m = _manifest()

    M.target_failed(m, target_id="a", kind="static", ts=T0, error={"type": "EXECUTION_ERROR"})
    M.target_blocked(m, target_id="b", kind="static", ts=T0, dependency="a")
    M.target_expanded(m, target_id="m", ts=T0, children=["m_1", "m_2"], total=5)
    M.cache_warning(m, target_id="c", ts=T0, reason="ilegível")

    assert m.targets["a"]["status"] == "errored"
    assert m.targets["b"]["blocked_by"] == "a"
    assert m.targets["m"]["children"] == ["m_1", "m_2"]
    assert m.events_of("target_expanded")[0]["payload"] == {"materialized": 2, "total": 5}
    assert m.events_of("cache_warning")[0]["target_id"] == "c"
    assert len(m.events) == 4


def test_save_and_load_roundtrip(tmp_path):
    m = _manifest()
    M.target_started(m, target_id="data", kind="static", ts=T0)
    path = tmp_path / "runs" / "run-1" / "manifest.json"

    M.save_manifest(m, path)
    loaded = M.load_manifest(path)

    assert loaded.to_dict() == m.to_dict()
    text = path.read_text(encoding="utf-8")
    assert json.loads(text) == m.to_dict()
    assert text == json.dumps(m.to_dict(), ensure_ascii=False, indent=2, sort_keys=True)


def test_from_dict_is_permissive():
    loaded = M.AtlasManifest.from_dict({"run": {"run_id": "x"}})

    assert loaded.events == []
    assert loaded.targets == {}
    assert loaded.inputs == {}
