"""
Fingerprints de targets.

    fingerprint = sha256(canonical_json({command, deps, external, extra}))

- `command`: representação do comando (`Command.representation()`)
- `deps`: digest de valor de cada dependência direta; para sub-targets, os
  digests das fatias vinculadas
- `external`: snapshot de estado externo (`Command.external_state()`)
- `extra`: identidade da expansão (op, chave de grupo, etc.)

Digests de valor são calculados com `joblib.hash`, que trata arrays numpy
e objetos pandas de forma determinística.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import joblib

from atlas_targets.core.config.hashing import sha256_hex


def value_digest(value: Any) -> str:
    """Digest de conteúdo de um valor (40 caracteres hexadecimais)."""
    return joblib.hash(value, hash_name="sha1")


def aggregate_digest(child_digests: Sequence[str]) -> str:
    """Digest de um target dinâmico: digests dos sub-targets em ordem de geração."""
    return sha256_hex({"children": list(child_digests)})


def dynamic_fingerprint(children: Sequence[Tuple[str, Optional[str]]], *, complete: bool) -> str:
    """Fingerprint de um target dinâmico: `(sub_id, fingerprint)` em ordem de geração."""
    return sha256_hex({"children": [list(c) for c in children], "complete": complete})


def compute_fingerprint(
    *,
    command: Any,
    deps: Mapping[str, Any],
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Calcula o fingerprint de um target.

    Args:
        command: objeto com `representation()` e `external_state()`.
        deps: digests (ou listas de digests) por nome de dependência.
        extra: componentes adicionais de identidade.

    Returns:
        str: SHA-256 hexadecimal.
    """
    return sha256_hex(
        {
            "command": command.representation(),
            "deps": {k: deps[k] for k in sorted(deps)},
            "external": command.external_state(),
            "extra": extra or {},
        }
    )
