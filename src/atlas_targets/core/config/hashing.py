# src/atlas_targets/core/config/hashing.py
"""
Hashing canônico do Atlas Targets.

Este módulo concentra a serialização JSON canônica e o hash SHA-256 usados
tanto para identificar a configuração efetiva de uma run quanto como base
dos fingerprints de targets (`core.cache.fingerprint`).

Política de hashing (v1):
    - Serialização JSON canônica
    - Ordenação estável de chaves
    - Separadores compactos
    - Codificação UTF-8
    - Algoritmo SHA-256

Invariantes:
    - Estruturas equivalentes produzem o mesmo hash
    - O valor gerado é sempre uma string hexadecimal de 64 caracteres
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(data: Any) -> str:
    """
    Serializa `data` em JSON canônico (chaves ordenadas, sem espaços).

    Raises:
        TypeError: Se a estrutura contiver valores não serializáveis em JSON.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_hex(data: Any) -> str:
    """Hash SHA-256 hexadecimal da forma canônica de `data`."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração efetiva da run.

    O hash é registrado no Manifest da run para rastreabilidade; ele não
    participa dos fingerprints de targets (mudar `engine.jobs` não invalida
    o cache).

    Args:
        config (Dict[str, Any]): Configuração efetiva.

    Returns:
        str: Hash SHA-256 hexadecimal da configuração.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    return sha256_hex(config)
