"""
Fingerprint / Cache Store do Atlas Targets.

Componentes:
    - fingerprint → digests de valor e fingerprints de targets
    - store       → persistência endereçada por conteúdo, stage-then-commit
"""

from .fingerprint import aggregate_digest, compute_fingerprint, dynamic_fingerprint, value_digest
from .store import PENDING_FINGERPRINT, CacheEntry, CacheStore, atomic_dump, atomic_write_bytes, open_store

__all__ = [
    "PENDING_FINGERPRINT",
    "CacheEntry",
    "CacheStore",
    "aggregate_digest",
    "atomic_dump",
    "atomic_write_bytes",
    "compute_fingerprint",
    "dynamic_fingerprint",
    "open_store",
    "value_digest",
]
