# tests/core/engine/test_scheduler_failures.py
"""
Testes de falhas, bloqueios e corrupção de cache no scheduler.

Os testes asseguram que:
- um comando com erro vai para `errored` e seus dependentes para `blocked`
- ramos independentes seguem e terminam com sucesso
- targets com erro não gravam entrada no cache
- falhas de expansão não produzem sub-targets
- cache corrompido vira warning + reconstrução, nunca exceção
- planos inválidos levantam CompileError sem executar nada

Decisões arquiteturais:
    - `run()` só levanta exceção para plano inválido ou `jobs` inválido
    - Falhas de comando viram AtlasErrorPayload sem stack trace
"""

import threading

import pandas as pd
import pytest

from atlas_targets import (
    CycleDetectedError,
    ExpansionError,
    TargetNotBuiltError,
    TargetStatus,
    map_over,
    target,
)
from atlas_targets.core.config.errors import InvalidSettingError
from atlas_targets.core.errors import BLOCKED_BY_DEPENDENCY, EXECUTION_ERROR, EXPANSION_ERROR


def _fragile(data):
    if data[0] == 2:
        raise ValueError("fatia dois é inválida")
    return data


def test_failure_blocks_dependents_and_spares_independent_branches(workspace):
    """
    Falha de um target não aborta a run.

    Cenário:
        a → bad → after_bad
        a → independent

    Invariantes:
        - bad: errored (EXECUTION_ERROR com a classe da exceção)
        - after_bad: blocked, apontando `bad` como dependência
        - a / independent: built
        - exit_code == 1
    """
    report = workspace.run(
        [
            target("a", lambda: [1, 2, 3]),
            target("bad", lambda a: 1 / 0),
            target("after_bad", lambda bad: bad),
            target("independent", lambda a: len(a)),
        ]
    )

    assert report.status("bad") is TargetStatus.ERRORED
    assert report.status("after_bad") is TargetStatus.BLOCKED
    assert report.status("a") is TargetStatus.BUILT
    assert report.status("independent") is TargetStatus.BUILT
    assert report.exit_code == 1
    assert not report.ok

    assert len(report.errors) == 1
    error = report.errors[0]
    assert error.type == EXECUTION_ERROR
    assert error.target_id == "bad"
    assert error.details["exception_class"] == "ZeroDivisionError"

    blocked = report.targets["after_bad"].error
    assert blocked.type == BLOCKED_BY_DEPENDENCY
    assert blocked.details == {"dependency": "bad"}

    with pytest.raises(TargetNotBuiltError):
        workspace.read("bad")
    assert workspace.read("independent") == 3


def test_failing_subtarget_blocks_parent_and_is_retried(reopen):
    """
    Um sub-target com erro bloqueia o pai; os irmãos bem-sucedidos ficam
    em cache e a próxima run reexecuta apenas o sub-target com erro.
    """
    plan = [
        target("data", lambda: [1, 2, 3]),
        target("checked", _fragile, map_over("data")),
        target("total", lambda checked: sum(checked)),
    ]

    first = reopen().run(plan)
    children = [t for t, o in first.targets.items() if o.parent == "checked"]
    failed = [c for c in children if first.status(c) is TargetStatus.ERRORED]

    assert len(children) == 3
    assert len(failed) == 1
    assert first.status("checked") is TargetStatus.BLOCKED
    assert first.status("total") is TargetStatus.BLOCKED

    ws = reopen()
    assert ws.read("checked", mode="list") == {c: [v] for c, v in zip(children, [1, 2, 3]) if c not in failed}

    second = ws.run(plan)

    assert second.executed == []
    assert second.status(failed[0]) is TargetStatus.ERRORED
    assert sorted(second.with_status(TargetStatus.UP_TO_DATE)) == sorted(["data"] + [c for c in children if c not in failed])


def _times_ten(data):
    return [data[0] * 10]


def _times_hundred(data):
    if data[0] == 2:
        raise ValueError("fatia dois é inválida")
    return [data[0] * 100]


def test_failing_rebuild_discards_previous_subtarget_value(reopen):
    """
    Um sub-target que já tinha entrada e falha sob um comando novo não
    deixa o valor antigo visível na leitura do pai.

    Cenário:
        - run 1: sq = map(data) com `_times_ten` → [10, 20, 30]
        - run 2: comando muda para `_times_hundred`, que falha na fatia 2

    Invariantes:
        - read("sq") contém apenas valores do comando atual
        - a lista de sub-targets continua disponível
        - `outdated` aponta o pai
    """
    def plan(command):
        return [target("data", lambda: [1, 2, 3]), target("sq", command, map_over("data"))]

    reopen().run(plan(_times_ten))
    assert reopen().read("sq") == [10, 20, 30]

    report = reopen().run(plan(_times_hundred))
    children = [t for t, o in report.targets.items() if o.parent == "sq"]
    failed = report.with_status(TargetStatus.ERRORED)

    assert len(failed) == 1 and failed[0] in children
    assert report.status("sq") is TargetStatus.BLOCKED

    ws = reopen()
    assert ws.read("sq") == [100, 300]
    assert failed[0] not in ws.read("sq", mode="list")
    assert ws.subtargets("sq") == children
    with pytest.raises(TargetNotBuiltError):
        ws.read(failed[0])
    assert "sq" in ws.outdated(plan(_times_hundred))


def test_expansion_error_produces_no_subtargets(workspace):
    """
    map sobre contagens [3, 2] falha a expansão.

    Invariantes:
        - o target dinâmico termina `errored` com EXPANSION_ERROR
        - nenhum sub-target é materializado nem persistido
        - dependentes ficam `blocked`
    """
    report = workspace.run(
        [
            target("a", lambda: [1, 2, 3]),
            target("b", lambda: [1, 2]),
            target("pairs", lambda a, b: a + b, map_over("a", "b")),
            target("after", lambda pairs: pairs),
        ]
    )

    assert report.status("pairs") is TargetStatus.ERRORED
    assert report.targets["pairs"].error.type == EXPANSION_ERROR
    assert report.status("after") is TargetStatus.BLOCKED
    assert [o for o in report.targets.values() if o.parent == "pairs"] == []
    with pytest.raises(TargetNotBuiltError):
        workspace.subtargets("pairs")


def test_mixed_structural_types_fail_aggregation(workspace):
    """
    Sub-targets com tipos estruturais diferentes falham a agregação do pai,
    mas continuam legíveis individualmente em modo "list".
    """
    report = workspace.run(
        [
            target("data", lambda: [1, 2, 3]),
            target("mixed", lambda data: data if data[0] < 2 else pd.DataFrame({"x": data}), map_over("data")),
        ]
    )

    assert report.status("mixed") is TargetStatus.ERRORED
    assert report.targets["mixed"].error.type == EXPANSION_ERROR
    assert len(workspace.read("mixed", mode="list")) == 3
    with pytest.raises(ExpansionError):
        workspace.read("mixed")


def test_unserializable_value_is_execution_error(workspace):
    report = workspace.run([target("lock", lambda: threading.Lock())])

    assert report.status("lock") is TargetStatus.ERRORED
    assert report.errors[0].type == EXECUTION_ERROR
    with pytest.raises(TargetNotBuiltError):
        workspace.read("lock")


def test_invalid_max_expand_fails_only_dynamic_targets(workspace, numbers_plan):
    report = workspace.run(numbers_plan, max_expand=-1)

    assert report.status("data") is TargetStatus.BUILT
    assert report.status("doubled") is TargetStatus.ERRORED
    assert report.targets["doubled"].error.type == EXPANSION_ERROR
    assert report.status("total") is TargetStatus.BLOCKED


def test_invalid_jobs_raises_before_running(workspace, numbers_plan):
    with pytest.raises(InvalidSettingError):
        workspace.run(numbers_plan, jobs=0)

    assert list(workspace.store.entries()) == []


def test_cycle_is_compile_error_with_zero_executions(workspace):
    """
    Plano cíclico é rejeitado na compilação: nenhuma entrada é escrita.
    """
    plan = [
        target("seed", lambda: 1),
        target("a", lambda b, seed: b + seed),
        target("b", lambda a: a),
    ]

    with pytest.raises(CycleDetectedError):
        workspace.run(plan)

    assert list(workspace.store.entries()) == []
    assert workspace.graph_info() == {"nodes": [], "edges": []}


def test_corrupted_meta_is_warning_and_rebuild(reopen, numbers_plan):
    """
    Entrada de metadados ilegível é tratada como cache miss.

    Invariantes:
        - a run não levanta exceção
        - o target é reconstruído e um warning é registrado
        - como o valor reconstruído é igual, dependentes seguem em cache
    """
    ws = reopen()
    ws.run(numbers_plan)
    ws.store.meta_path("data").write_text("{ corrompido", encoding="utf-8")

    report = reopen().run(numbers_plan)

    assert report.ok
    assert report.executed == ["data"]
    assert report.status("data") is TargetStatus.BUILT
    assert report.warnings["data"]
    assert report.status("total") is TargetStatus.UP_TO_DATE


def test_corrupted_object_is_warning_and_rebuild(reopen, numbers_plan):
    ws = reopen()
    ws.run(numbers_plan)
    entry = ws.store.lookup("total")
    ws.store.object_path(entry.value_digest).write_bytes(b"corrompido")

    report = reopen().run(numbers_plan)

    assert report.executed == ["total"]
    assert report.warnings["total"]
    assert reopen().read("total") == 12
