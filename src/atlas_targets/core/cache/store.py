"""
Cache store persistente e endereçado por conteúdo.

Layout (relativo à raiz do store):

    objects/<aa>/<digest>.joblib   valores (endereçados por digest)
    meta/<target_id>.json          entradas de cache
    trace/<target_id>.joblib       traces por target dinâmico
    runs/<run_id>/manifest.json    manifest de cada run

Decisões (v1):
- Formato dos valores: joblib
- Toda escrita é stage-then-commit: arquivo temporário no mesmo diretório,
  fsync e `os.replace`. Uma queda no meio da escrita nunca deixa uma entrada
  parcial legível.
- O objeto é gravado antes da entrada `meta`; objetos órfãos são inofensivos.
- Entradas ilegíveis levantam CacheCorruptionError; quem consulta trata como
  cache miss.

Ciclo de vida explícito: `open()` → leituras/commits → `flush()` → `close()`.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import joblib

from atlas_targets.core.exceptions import CacheCorruptionError

from .fingerprint import value_digest


_DIGEST_PATTERN = re.compile(r"^[a-f0-9]{40}$")
_TMP_SUFFIX = ".tmp"

# Entrada de target dinâmico gravada na expansão, antes da resolução.
PENDING_FINGERPRINT = "pending"


# ---------------------------------------------------------------------------
# Escrita atômica
# ---------------------------------------------------------------------------

def _tmp_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Escreve `data` em `path` via arquivo temporário + `os.replace`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_path_for(path)
    try:
        with tmp.open("wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def atomic_dump(value: Any, path: Path) -> None:
    """Serializa `value` com joblib em `path` via stage-then-commit."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_path_for(path)
    try:
        with tmp.open("wb") as f:
            joblib.dump(value, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Entrada de cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CacheEntry:
    """
    Entrada de cache de um target.

    Campos:
        - target_id: identificador do target (ou sub-target)
        - kind: static | dynamic | subtarget
        - fingerprint: fingerprint da última execução bem-sucedida
        - value_digest: digest do valor (None para dinâmico ainda não resolvido)
        - timestamp: UTC ISO 8601 do commit
        - element_count: número de elementos do valor
        - children: sub-targets materializados, em ordem de geração (dinâmico)
        - complete: False quando `max_expand` truncou a expansão
        - total: sub-targets gerados pela expansão (materializados ou não)
    """

    target_id: str
    kind: str
    fingerprint: str
    value_digest: Optional[str]
    timestamp: str
    element_count: int = 0
    children: Tuple[str, ...] = ()
    complete: bool = True
    total: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "kind": self.kind,
            "fingerprint": self.fingerprint,
            "value_digest": self.value_digest,
            "timestamp": self.timestamp,
            "element_count": self.element_count,
            "children": list(self.children),
            "complete": self.complete,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            target_id=str(data["target_id"]),
            kind=str(data["kind"]),
            fingerprint=str(data["fingerprint"]),
            value_digest=data["value_digest"],
            timestamp=str(data["timestamp"]),
            element_count=int(data.get("element_count", 0)),
            children=tuple(str(c) for c in data.get("children", []) or []),
            complete=bool(data.get("complete", True)),
            total=data.get("total"),
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@dataclass
class CacheStore:
    """Store canônica (v1) de entradas e valores de targets."""

    root: Path
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _opened: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "CacheStore":
        for sub in ("objects", "meta", "trace", "runs"):
            (self.root / sub).mkdir(parents=True, exist_ok=True)
        self._opened = True
        return self

    @property
    def is_open(self) -> bool:
        return self._opened

    def flush(self) -> None:
        """Garante durabilidade dos renames já efetuados (fsync dos diretórios)."""
        if not self._opened or os.name != "posix":
            return
        with self._lock:
            for sub in ("objects", "meta", "trace"):
                directory = self.root / sub
                if not directory.exists():
                    continue
                fd = os.open(directory, os.O_RDONLY)
                try:
                    os.fsync(fd)
                finally:
                    os.close(fd)

    def close(self) -> None:
        self.flush()
        self._opened = False

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("CacheStore não está aberto; chame open() antes de usar")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def meta_path(self, target_id: str) -> Path:
        return self.root / "meta" / f"{target_id}.json"

    def object_path(self, digest: str) -> Path:
        if not _DIGEST_PATTERN.match(digest):
            raise ValueError(f"Invalid value digest: {digest!r}")
        return self.root / "objects" / digest[:2] / f"{digest}.joblib"

    def trace_path(self, target_id: str) -> Path:
        return self.root / "trace" / f"{target_id}.joblib"

    def run_dir(self, run_id: str) -> Path:
        return self.root / "runs" / run_id

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------
    def lookup(self, target_id: str) -> Optional[CacheEntry]:
        """Retorna a entrada de `target_id` ou None.

        Raises:
            CacheCorruptionError: entrada ilegível, parcial ou sem objeto.
        """
        self._require_open()
        path = self.meta_path(target_id)
        if not path.exists():
            return None
        try:
            entry = CacheEntry.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CacheCorruptionError(
                message=f"Entrada de cache ilegível para '{target_id}'",
                details={"target_id": target_id, "path": str(path), "reason": e.__class__.__name__},
            ) from e

        if entry.target_id != target_id:
            raise CacheCorruptionError(
                message=f"Entrada de cache inconsistente para '{target_id}'",
                details={"target_id": target_id, "found": entry.target_id},
            )
        if entry.value_digest is not None and not self._object_exists(entry.value_digest):
            raise CacheCorruptionError(
                message=f"Objeto ausente para a entrada de '{target_id}'",
                details={"target_id": target_id, "value_digest": entry.value_digest},
            )
        return entry

    def _object_exists(self, digest: str) -> bool:
        try:
            return self.object_path(digest).exists()
        except ValueError:
            return False

    def load_value(self, entry: CacheEntry) -> Any:
        """Carrega o valor referenciado por `entry`.

        Raises:
            CacheCorruptionError: objeto ilegível.
        """
        self._require_open()
        if entry.value_digest is None:
            raise CacheCorruptionError(
                message=f"Entrada de '{entry.target_id}' não referencia valor",
                details={"target_id": entry.target_id},
            )
        path = self.object_path(entry.value_digest)
        try:
            return joblib.load(path)
        except Exception as e:
            raise CacheCorruptionError(
                message=f"Objeto ilegível para '{entry.target_id}'",
                details={"target_id": entry.target_id, "path": str(path), "reason": e.__class__.__name__},
            ) from e

    def entries(self) -> Iterator[str]:
        """Ids de targets com entrada `meta` (ordem lexicográfica)."""
        meta = self.root / "meta"
        if not meta.exists():
            return iter(())
        return iter(sorted(p.stem for p in meta.glob("*.json") if not p.name.startswith(".")))

    # ------------------------------------------------------------------
    # Escrita
    # ------------------------------------------------------------------
    def commit_value(
        self,
        *,
        target_id: str,
        kind: str,
        fingerprint: str,
        value: Any,
        element_count: int,
        digest: Optional[str] = None,
    ) -> CacheEntry:
        """Persiste valor + entrada, substituindo a entrada anterior atomicamente."""
        self._require_open()
        digest = digest or value_digest(value)
        with self._lock:
            obj = self.object_path(digest)
            if not obj.exists():
                atomic_dump(value, obj)
            entry = CacheEntry(
                target_id=target_id,
                kind=kind,
                fingerprint=fingerprint,
                value_digest=digest,
                timestamp=_utc_now_iso(),
                element_count=int(element_count),
            )
            self.commit_entry(entry)
        return entry

    def commit_entry(self, entry: CacheEntry) -> None:
        self._require_open()
        data = json.dumps(entry.to_dict(), ensure_ascii=False, indent=2, sort_keys=True).encode("utf-8")
        with self._lock:
            atomic_write_bytes(self.meta_path(entry.target_id), data)

    def new_entry(self, **fields: Any) -> CacheEntry:
        return CacheEntry(timestamp=_utc_now_iso(), **fields)

    def discard_object(self, digest: str) -> None:
        """Remove um objeto ilegível para que o próximo commit o regrave."""
        self._require_open()
        with self._lock:
            path = self.object_path(digest)
            if path.exists():
                path.unlink()

    def remove(self, target_id: str) -> bool:
        self._require_open()
        path = self.meta_path(target_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
            return True

    # ------------------------------------------------------------------
    # Purga
    # ------------------------------------------------------------------
    def purge(self) -> List[str]:
        """Remove entradas, objetos e traces. Retorna os ids removidos."""
        removed = list(self.entries())
        with self._lock:
            for sub in ("meta", "objects", "trace"):
                directory = self.root / sub
                if directory.exists():
                    shutil.rmtree(directory)
            if self._opened:
                self.open()
        return removed

    def destroy(self) -> None:
        """Remove o armazenamento persistido por completo."""
        with self._lock:
            if self.root.exists():
                shutil.rmtree(self.root)
            self._opened = False


def open_store(root: Union[str, Path]) -> CacheStore:
    return CacheStore(root=Path(root)).open()
