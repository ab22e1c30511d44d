"""
Loader canônico de configuração do Atlas Targets.

A configuração efetiva de um Workspace é resolvida a partir de:
    - defaults embutidos (`DEFAULT_CONFIG`)
    - um arquivo de projeto opcional (ex.: `atlas_targets.yaml`)
    - um arquivo local de overrides opcional (ex.: `atlas_targets.local.yaml`)
    - overrides explícitos passados em código

Cada camada é aplicada via `merge_layer`, sempre com precedência da camada
mais específica.

Invariantes:
    - O resultado é sempre um dicionário puro (`dict`)
    - Overrides nunca mutam os defaults
    - A mesma entrada sempre produz a mesma configuração final
"""

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json

import yaml  # PyYAML

from .errors import (
    ConfigTypeConflictError,
    ConfigFileNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)


DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "jobs": 1,
        "max_expand": None,
    },
    "store": {
        "path": ".atlas_targets",
    },
    "trace": {
        "enabled": True,
    },
    "manifest": {
        "enabled": True,
    },
}


def merge_layer(base: Dict[str, Any], layer: Dict[str, Any], _where: str = "") -> Dict[str, Any]:
    """
    Aplica uma camada de configuração sobre `base`, sem mutar nenhuma delas.

    Seções (dict) são mescladas chave a chave; listas e escalares da camada
    substituem o valor base. Um valor base `None` (ex.: `engine.max_expand`)
    aceita qualquer tipo.

    Raises:
        ConfigTypeConflictError: Se a camada trocar o tipo de uma chave;
            a mensagem traz o caminho pontuado (ex.: `engine.jobs`).
    """
    if not isinstance(base, dict) or not isinstance(layer, dict):
        raise ConfigTypeConflictError(
            f"Camadas de configuração devem ser dicts, recebido: "
            f"{type(base).__name__} vs {type(layer).__name__}"
        )

    merged = deepcopy(base)
    for key, value in layer.items():
        where = f"{_where}.{key}" if _where else str(key)
        current = merged.get(key)

        if current is None or value is None:
            merged[key] = deepcopy(value)
        elif isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_layer(current, value, where)
        elif isinstance(value, list) or type(current) is type(value):
            merged[key] = deepcopy(value)
        else:
            raise ConfigTypeConflictError(
                f"Conflito de tipo em '{where}': {type(current).__name__} vs {type(value).__name__}"
            )
    return merged


def load_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Carrega um arquivo YAML/JSON e valida que o conteúdo raiz é um `dict`.

    Arquivos vazios são interpretados como dicionários vazios.

    Args:
        path (Union[str, Path]): Caminho do arquivo.

    Returns:
        Dict[str, Any]: Conteúdo do arquivo.

    Raises:
        ConfigFileNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se a extensão não for suportada.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigFileNotFoundError(f"Arquivo não encontrado: {path}")

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)

    else:
        raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def load_config(
    *,
    path: Optional[Union[str, Path]] = None,
    local_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Resolve a configuração efetiva do Workspace.

    Política de resolução:
        - `DEFAULT_CONFIG` é sempre a base
        - `path`, quando informado, deve existir
        - `local_path` é opcional e ignorado se não existir
        - `overrides` (dict) tem a maior precedência

    Args:
        path: Arquivo de configuração do projeto.
        local_path: Arquivo local de overrides (opcional).
        overrides: Overrides explícitos em código.

    Returns:
        Dict[str, Any]: Configuração final resolvida.

    Raises:
        ConfigFileNotFoundError: Se `path` for informado e não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo não for um dicionário.
        ConfigTypeConflictError: Se ocorrer conflito estrutural durante o merge.
    """
    effective = deepcopy(DEFAULT_CONFIG)

    if path is not None:
        effective = merge_layer(effective, load_file(path))

    if local_path is not None and Path(local_path).exists():
        effective = merge_layer(effective, load_file(local_path))

    if overrides:
        effective = merge_layer(effective, overrides)

    return effective
