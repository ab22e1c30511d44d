"""
Atlas Targets — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros reportados por uma run.
Erros capturados por target nunca escapam de `run()` como exceção: são
convertidos em `AtlasErrorPayload` e agregados no RunReport.

Erros são artefatos de domínio e devem ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .exceptions import (
    AtlasException,
    CacheCorruptionError,
    CompileError,
    ExecutionError,
    ExpansionError,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AtlasErrorPayload:
    """
    Payload canônico de erro do Atlas Targets.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    - target_id: target ao qual o erro foi atribuído, quando houver
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    target_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Compilação
COMPILE_ERROR = "COMPILE_ERROR"

# Expansão dinâmica / agregação
EXPANSION_ERROR = "EXPANSION_ERROR"

# Execução
EXECUTION_ERROR = "EXECUTION_ERROR"
BLOCKED_BY_DEPENDENCY = "BLOCKED_BY_DEPENDENCY"

# Cache
CACHE_CORRUPTION = "CACHE_CORRUPTION"


_CODES = (
    (CompileError, COMPILE_ERROR),
    (ExpansionError, EXPANSION_ERROR),
    (ExecutionError, EXECUTION_ERROR),
    (CacheCorruptionError, CACHE_CORRUPTION),
)


def error_code_for(exc: BaseException) -> str:
    """Resolve o código estável do catálogo para uma exceção."""
    for cls, code in _CODES:
        if isinstance(exc, cls):
            return code
    return EXECUTION_ERROR


def exception_to_payload(exc: BaseException, *, target_id: Optional[str] = None) -> AtlasErrorPayload:
    """Converte exceções em AtlasErrorPayload (serializável, acionável).

    Regras:
    - AtlasException: já vem com message/details/hint.
    - Outras exceções (falha do comando do usuário): encapsular como
      EXECUTION_ERROR sem expor stack trace.
    """
    if isinstance(exc, AtlasException):
        return AtlasErrorPayload(
            type=error_code_for(exc),
            message=exc.message or "Erro de execução",
            details=dict(exc.details or {}),
            hint=exc.hint,
            target_id=target_id,
        )

    return AtlasErrorPayload(
        type=EXECUTION_ERROR,
        message=str(exc) or "Erro inesperado durante execução",
        details={"exception_class": exc.__class__.__name__},
        hint="Corrija o comando do target e reexecute; apenas ele e seus descendentes serão refeitos.",
        target_id=target_id,
    )


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def blocked_by_dependency(*, target_id: str, dependency: str) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=BLOCKED_BY_DEPENDENCY,
        message="Target bloqueado por dependência com erro",
        details={"dependency": dependency},
        hint="Corrija o target upstream indicado em `dependency`.",
        target_id=target_id,
    )
