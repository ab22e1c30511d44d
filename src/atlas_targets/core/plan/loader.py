"""
Loader declarativo de planos (YAML/JSON).

Formato:

    targets:
      - name: raw
        command: "my_project.pipeline:load_raw"
      - name: clean
        command: "my_project.pipeline:clean"
        watch: ["data/raw.csv"]
      - name: per_row
        command: "my_project.pipeline:score"
        dynamic:
          op: map
          sources: [clean]
          max_expand: 10

`command` é um caminho de import `pacote.modulo:funcao`; os demais campos
seguem o registro aceito por `compile_plan`.

Limites explícitos:
    - `by` e `trace` como função só são suportados via caminho de import
    - Não compila o plano (apenas normaliza registros)
"""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

from atlas_targets.core.config.loader import load_file
from atlas_targets.core.exceptions import InvalidPlanError


def resolve_callable(path: str) -> Callable[..., Any]:
    """Resolve `pacote.modulo:atributo` para o objeto importado."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise InvalidPlanError(
            message=f"Caminho de comando inválido: {path!r}",
            details={"command": path},
            hint="Use o formato 'pacote.modulo:funcao'.",
        )

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise InvalidPlanError(
            message=f"Módulo não encontrado: {module_name}",
            details={"command": path, "reason": str(e)},
        ) from e

    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise InvalidPlanError(
                message=f"Atributo não encontrado: {path}",
                details={"command": path, "attribute": part},
            ) from None

    if not callable(obj):
        raise InvalidPlanError(
            message=f"Comando não é executável: {path}",
            details={"command": path, "received": type(obj).__name__},
        )
    return obj


def _maybe_import(value: Any) -> Any:
    if isinstance(value, str) and ":" in value:
        return resolve_callable(value)
    return value


def _resolve_record(raw: Any, index: int) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidPlanError(
            message=f"Registro #{index} do plano deve ser um mapeamento",
            details={"index": index, "received": type(raw).__name__},
        )

    record = dict(raw)
    command = record.get("command")
    if isinstance(command, str):
        record["command"] = resolve_callable(command)

    dynamic = record.get("dynamic")
    if isinstance(dynamic, dict):
        dynamic = dict(dynamic)
        if "by" in dynamic:
            dynamic["by"] = _maybe_import(dynamic["by"])
        trace = dynamic.get("trace")
        if isinstance(trace, dict):
            dynamic["trace"] = {k: _maybe_import(v) for k, v in trace.items()}
        record["dynamic"] = dynamic

    return record


def load_plan(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Carrega um plano declarativo e resolve os comandos importáveis.

    Returns:
        List[Dict[str, Any]]: registros prontos para `compile_plan`.

    Raises:
        ConfigFileNotFoundError / UnsupportedConfigFormatError /
        InvalidConfigRootTypeError: problemas de arquivo (ver config.loader).
        InvalidPlanError: estrutura ou comando inválido.
    """
    data = load_file(path)
    targets = data.get("targets")
    if not isinstance(targets, list):
        raise InvalidPlanError(
            message="Plano deve conter a lista `targets`",
            details={"path": str(path), "received": type(targets).__name__},
        )
    return [_resolve_record(raw, i) for i, raw in enumerate(targets)]
