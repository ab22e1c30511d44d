# tests/core/engine/test_scheduler_parallel.py
"""
Testes de paralelismo limitado do scheduler.

Invariantes:
    - Targets independentes executam concorrentemente quando `jobs > 1`
    - Nunca há mais que `jobs` comandos em execução simultânea
    - O resultado de uma run não depende de `jobs`
"""

import threading
import time

from atlas_targets import TargetStatus, Workspace, map_over, target


class _Gauge:
    """Mede a concorrência máxima observada (não serializável de propósito)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0

    def __enter__(self):
        with self._lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
        return self

    def __exit__(self, *exc):
        with self._lock:
            self.current -= 1
        return False


def _measured(gauge):
    def work(data):
        with gauge:
            time.sleep(0.02)
        return [x * x for x in data]

    return work


def test_independent_targets_run_concurrently(workspace):
    """
    Dois targets que só terminam se executarem ao mesmo tempo.

    Com `jobs=2` ambos concluem; a barreira com timeout evita travar a
    suíte caso o paralelismo não aconteça.
    """
    barrier = threading.Barrier(2, timeout=10)

    report = workspace.run(
        [
            target("left", lambda: (barrier.wait(), "left")[1]),
            target("right", lambda: (barrier.wait(), "right")[1]),
        ],
        jobs=2,
    )

    assert report.ok
    assert workspace.read("left") == "left"
    assert workspace.read("right") == "right"


def test_in_flight_work_never_exceeds_jobs(workspace):
    gauge = _Gauge()

    report = workspace.run(
        [
            target("data", lambda: list(range(12))),
            target("squares", _measured(gauge), map_over("data")),
        ],
        jobs=3,
    )

    assert report.ok
    assert 1 <= gauge.peak <= 3
    assert workspace.read("squares") == [x * x for x in range(12)]


def test_result_is_independent_of_jobs(tmp_path):
    """
    A mesma run com `jobs=1` e `jobs=4` produz valores e ids idênticos.
    """
    def plan():
        return [
            target("data", lambda: list(range(8))),
            target("keys", lambda: [x % 3 for x in range(8)]),
            target("groups", lambda data: [sorted(data)], map_over("data")),
            target("plus", lambda groups, keys: [groups[0][0] + keys[0]], map_over("groups", "keys")),
            target("total", lambda plus: sum(plus)),
        ]

    serial = Workspace(tmp_path / "serial")
    parallel = Workspace(tmp_path / "parallel")

    r1 = serial.run(plan(), jobs=1)
    r4 = parallel.run(plan(), jobs=4)

    assert r1.ok and r4.ok
    assert serial.read("total") == parallel.read("total")
    assert serial.subtargets("plus") == parallel.subtargets("plus")
    assert sorted(r1.executed) == sorted(r4.executed)
    assert all(o.status is TargetStatus.BUILT for o in r4.targets.values())


def test_jobs_from_config(tmp_path):
    ws = Workspace(tmp_path, config={"engine": {"jobs": 3}})

    report = ws.run([target("a", lambda: 1)])

    assert ws.settings.jobs == 3
    assert ws.last_context.meta["jobs"] == 3
    assert report.ok
