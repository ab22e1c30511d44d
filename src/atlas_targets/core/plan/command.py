"""
Comando de um target como capacidade opaca.

Um `Command` encapsula uma função Python chamada como `fn(**inputs)`, com
um argumento nomeado por target referenciado. O engine não verifica
determinismo: fingerprints idênticos implicam saídas intercambiáveis por
contrato do usuário.

Representação para fingerprint:
    - bytecode, constantes e nomes do code object (recursivo)
    - conteúdo de closures e valores default
    - funções globais do mesmo módulo chamadas pelo comando
    - refs ordenadas

Estado externo relevante:
    - conteúdo (SHA-256) de cada caminho em `watch`
"""

from __future__ import annotations

import hashlib
import inspect
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from atlas_targets.core.cache.fingerprint import value_digest


@dataclass(frozen=True)
class Command:
    fn: Callable[..., Any]
    refs: Tuple[str, ...]
    watch: Tuple[str, ...] = ()

    @classmethod
    def from_callable(
        cls,
        fn: Callable[..., Any],
        *,
        refs: Optional[Sequence[str]] = None,
        watch: Sequence[str] = (),
    ) -> "Command":
        if not callable(fn):
            raise TypeError(f"command deve ser callable, recebido: {type(fn).__name__}")
        if refs is None:
            refs = infer_refs(fn)
        return cls(fn=fn, refs=tuple(refs), watch=tuple(str(p) for p in watch))

    def __call__(self, **inputs: Any) -> Any:
        return self.fn(**inputs)

    def representation(self) -> Dict[str, Any]:
        return {
            "code": function_repr(self.fn),
            "refs": sorted(self.refs),
        }

    def external_state(self) -> Dict[str, str]:
        """Snapshot do estado externo observado (arquivos em `watch`)."""
        state: Dict[str, str] = {}
        for raw in self.watch:
            path = Path(raw)
            if path.is_file():
                state[raw] = hashlib.sha256(path.read_bytes()).hexdigest()
            else:
                state[raw] = "missing"
        return state


def infer_refs(fn: Callable[..., Any]) -> Tuple[str, ...]:
    """Parâmetros sem default são as referências do comando."""
    sig = inspect.signature(fn)
    refs: List[str] = []
    for p in sig.parameters.values():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD, p.POSITIONAL_ONLY):
            continue
        if p.default is p.empty:
            refs.append(p.name)
    return tuple(refs)


def function_repr(fn: Callable[..., Any]) -> str:
    """Digest estável da implementação de `fn`."""
    parts: List[str] = []
    _collect(fn, parts, set())
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()


def _collect(fn: Any, parts: List[str], seen: Set[int]) -> None:
    if id(fn) in seen:
        return
    seen.add(id(fn))

    if not isinstance(fn, types.FunctionType):
        target = getattr(fn, "__func__", None)
        if isinstance(target, types.FunctionType):
            _collect(target, parts, seen)
            return
        if isinstance(fn, types.BuiltinFunctionType):
            parts.append(f"builtin:{getattr(fn, '__module__', '')}.{fn.__qualname__}")
            return
        parts.append(f"obj:{type(fn).__module__}.{type(fn).__qualname__}")
        call = getattr(type(fn), "__call__", None)
        if isinstance(call, types.FunctionType):
            _collect(call, parts, seen)
        return

    parts.append(_code_repr(fn.__code__))

    if fn.__defaults__:
        parts.append("defaults:" + _safe_digest(fn.__defaults__))
    if fn.__kwdefaults__:
        parts.append("kwdefaults:" + _safe_digest(fn.__kwdefaults__))

    for cell in fn.__closure__ or ():
        try:
            content = cell.cell_contents
        except ValueError:
            parts.append("cell:<empty>")
            continue
        if isinstance(content, types.FunctionType):
            _collect(content, parts, seen)
        else:
            parts.append("cell:" + _safe_digest(content))

    # Funções globais do mesmo módulo chamadas pelo comando.
    module = fn.__module__
    for name in _all_names(fn.__code__):
        ref = fn.__globals__.get(name)
        if isinstance(ref, types.FunctionType) and ref.__module__ == module:
            _collect(ref, parts, seen)


def _code_repr(code: types.CodeType) -> str:
    consts = []
    for c in code.co_consts:
        if isinstance(c, types.CodeType):
            consts.append(_code_repr(c))
        else:
            consts.append(repr(c))
    return "|".join(
        [
            code.co_code.hex(),
            ",".join(consts),
            ",".join(code.co_names),
            ",".join(code.co_varnames),
        ]
    )


def _all_names(code: types.CodeType) -> List[str]:
    names = list(code.co_names)
    for c in code.co_consts:
        if isinstance(c, types.CodeType):
            names.extend(_all_names(c))
    return names


def _safe_digest(value: Any) -> str:
    try:
        return value_digest(value)
    except Exception:
        # Valores não serializáveis entram apenas pelo tipo.
        return f"type:{type(value).__module__}.{type(value).__qualname__}"
