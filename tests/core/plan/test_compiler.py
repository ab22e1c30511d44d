# tests/core/plan/test_compiler.py
"""
Testes do Plan Compiler (`compile_plan`).

Este módulo valida que planos inválidos são rejeitados antes de qualquer
execução e que planos válidos produzem um esqueleto estático determinístico.

Os testes asseguram que:
- nomes duplicados e inválidos são rejeitados
- referências a targets inexistentes são rejeitadas
- operações dinâmicas desconhecidas são rejeitadas
- ciclos são detectados e reportados com o caminho completo
- a ordem topológica é determinística (empates por ordem lexicográfica)

Decisões arquiteturais:
    - Toda falha de compilação é subclasse de CompileError
    - O compilador não executa comandos nem lê o cache

Limites explícitos:
    - Não valida expansão dinâmica (ver tests/core/dynamic)
"""

import pytest

from atlas_targets.core.exceptions import (
    CompileError,
    CycleDetectedError,
    DuplicateTargetError,
    InvalidPlanError,
    UnknownReferenceError,
    UnsupportedOperationError,
)
from atlas_targets.core.plan import (
    DynamicOp,
    TargetKind,
    compile_plan,
    cross_over,
    group_by,
    map_over,
    target,
)


def _source():
    return [1, 2, 3]


def test_valid_plan_produces_deps_and_order():
    """
    Um plano válido produz dependências diretas e ordem topológica.

    Invariantes:
        - Dependências vêm dos parâmetros sem default do comando
        - Toda dependência aparece antes do dependente em `order`
    """
    plan = compile_plan(
        [
            target("report", lambda scores, data: (scores, data)),
            target("data", _source),
            target("scores", lambda data: [x + 1 for x in data], map_over("data")),
        ]
    )

    assert plan.deps == {"report": ("scores", "data"), "data": (), "scores": ("data",)}
    assert plan.order == ("data", "scores", "report")
    assert plan.names == ["report", "data", "scores"]
    assert plan.get("scores").kind is TargetKind.DYNAMIC
    assert plan.get("data").kind is TargetKind.STATIC
    assert plan.descendants("data") == ["report", "scores"]


def test_topological_order_is_lexicographic_on_ties():
    plan = compile_plan(
        [
            target("c", _source),
            target("a", _source),
            target("b", _source),
            target("z", lambda a, b, c: a + b + c),
        ]
    )

    assert plan.order == ("a", "b", "c", "z")


def test_duplicate_name_raises():
    with pytest.raises(DuplicateTargetError):
        compile_plan([target("data", _source), target("data", _source)])


@pytest.mark.parametrize("name", ["", "1data", "com espaço", "a/b", None])
def test_invalid_name_raises(name):
    with pytest.raises(InvalidPlanError):
        compile_plan([{"name": name, "command": _source}])


def test_unknown_reference_raises():
    """
    Parâmetros do comando que não nomeiam targets são referências inválidas.

    Usado para garantir:
        - Erros de digitação em nomes de dependências falham cedo
    """
    with pytest.raises(UnknownReferenceError) as exc:
        compile_plan([target("total", lambda dataa: sum(dataa))])

    assert exc.value.details["reference"] == "dataa"


def test_unsupported_operation_raises():
    record = {"name": "m", "command": lambda data: data, "dynamic": {"op": "zip", "sources": ["data"]}}

    with pytest.raises(UnsupportedOperationError):
        compile_plan([target("data", _source), record])


def test_dict_dynamic_spec_is_normalized():
    record = {"name": "m", "command": lambda data: data, "dynamic": {"op": "map", "sources": "data", "trace": "data"}}

    plan = compile_plan([target("data", _source), record])

    spec = plan.get("m").dynamic
    assert spec.op is DynamicOp.MAP
    assert spec.sources == ("data",)
    assert spec.trace == (("data", "data"),)


def test_record_without_command_raises():
    with pytest.raises(InvalidPlanError):
        compile_plan([{"name": "data"}])


def test_source_must_be_referenced_by_command():
    with pytest.raises(InvalidPlanError):
        compile_plan([target("data", _source), target("m", lambda: 1, map_over("data"))])


def test_unknown_source_raises():
    with pytest.raises(UnknownReferenceError):
        compile_plan([target("m", lambda data: data, map_over("data"))])


def test_group_requires_by():
    record = {"name": "g", "command": lambda data: data, "dynamic": {"op": "group", "sources": ["data"]}}

    with pytest.raises(InvalidPlanError):
        compile_plan([target("data", _source), record])


def test_group_by_unknown_target_raises():
    with pytest.raises(UnknownReferenceError):
        compile_plan([target("data", _source), target("g", lambda data: data, group_by("data", by="keys"))])


def test_group_by_cannot_be_its_own_source():
    with pytest.raises(InvalidPlanError):
        compile_plan([target("data", _source), target("g", lambda data: data, group_by("data", by="data"))])


def test_by_is_rejected_for_map():
    record = {
        "name": "m",
        "command": lambda data: data,
        "dynamic": {"op": "map", "sources": ["data"], "by": "data"},
    }

    with pytest.raises(InvalidPlanError):
        compile_plan([target("data", _source), record])


def test_group_by_target_becomes_dependency():
    plan = compile_plan(
        [
            target("data", _source),
            target("keys", lambda: ["a", "b", "a"]),
            target("g", lambda data: data, group_by("data", by="keys")),
        ]
    )

    assert plan.deps["g"] == ("data", "keys")


def test_trace_must_name_source_or_key():
    """
    Expressões de trace em texto precisam nomear uma fonte (ou a chave de
    grupo); funções são aceitas livremente.
    """
    with pytest.raises(UnknownReferenceError):
        compile_plan(
            [
                target("data", _source),
                target("other", _source),
                target("m", lambda data, other: data, map_over("data", trace="other")),
            ]
        )

    plan = compile_plan(
        [
            target("data", _source),
            target("m", lambda data: data, map_over("data", trace={"first": lambda data: data[0]})),
        ]
    )
    assert plan.get("m").dynamic.trace[0][0] == "first"


def test_cross_requires_all_sources_declared():
    with pytest.raises(UnknownReferenceError):
        compile_plan([target("x", _source), target("c", lambda x, y: (x, y), cross_over("x", "y"))])


def test_cycle_is_rejected_with_path():
    """
    Ciclos são rejeitados com o caminho completo na mensagem.

    Invariantes:
        - A exceção é CycleDetectedError (subclasse de CompileError)
        - `details["cycle"]` começa e termina no mesmo target
    """
    with pytest.raises(CycleDetectedError) as exc:
        compile_plan(
            [
                target("a", lambda c: c),
                target("b", lambda a: a),
                target("c", lambda b: b),
            ]
        )

    cycle = exc.value.details["cycle"]
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}
    assert " -> ".join(cycle) in exc.value.message
    assert isinstance(exc.value, CompileError)


def test_self_reference_is_a_cycle():
    with pytest.raises(CycleDetectedError) as exc:
        compile_plan([target("a", lambda a: a)])

    assert exc.value.details["cycle"] == ["a", "a"]
