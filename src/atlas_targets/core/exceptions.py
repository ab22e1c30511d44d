"""
Atlas Targets — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do Atlas Targets.

Objetivo:
- Permitir que Compiler/Expander/Scheduler levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para AtlasErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Taxonomia:
- CompileError          → plano cíclico ou malformado (fatal, a run não começa)
- ExpansionError        → expansão dinâmica inválida (falha apenas o target dinâmico)
- ExecutionError        → comando de um target falhou (falha o target, bloqueia descendentes)
- CacheCorruptionError  → entrada de cache ilegível (tratada como miss + warning)

Regras:
- Exceções devem carregar apenas dados estruturados (serializáveis).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AtlasException(Exception):
    """Base class para exceções internas do Atlas Targets.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Compilação do plano
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompileError(AtlasException):
    """Plano inválido: nenhuma execução pode começar."""


@dataclass(frozen=True)
class InvalidPlanError(CompileError):
    """Registro de target malformado (nome vazio, comando ausente, spec inválida)."""


@dataclass(frozen=True)
class DuplicateTargetError(CompileError):
    """Dois targets declarados com o mesmo nome."""


@dataclass(frozen=True)
class UnknownReferenceError(CompileError):
    """Comando ou spec dinâmica referencia um target não declarado."""


@dataclass(frozen=True)
class UnsupportedOperationError(CompileError):
    """Operação dinâmica fora de {map, cross, group}."""


@dataclass(frozen=True)
class CycleDetectedError(CompileError):
    """O grafo estático de dependências contém um ciclo."""


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExpansionError(AtlasException):
    """Expansão ou agregação dinâmica inválida para um target."""


@dataclass(frozen=True)
class ExecutionError(AtlasException):
    """Comando de um target falhou (encapsulado)."""


@dataclass(frozen=True)
class CacheCorruptionError(AtlasException):
    """Entrada de cache ilegível ou parcial. Nunca fatal."""


@dataclass(frozen=True)
class IllegalTransitionError(AtlasException):
    """Transição de status fora da máquina de estados do grafo."""


# ---------------------------------------------------------------------------
# Leitura
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TargetNotBuiltError(AtlasException):
    """Leitura de um target sem entrada válida no cache."""
