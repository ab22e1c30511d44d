# src/atlas_targets/core/run_context.py
"""
RunContext — contexto canônico de uma run do Atlas Targets.

O RunContext é o meio de registro de logs estruturados e de warnings não
fatais durante a execução. Cada run possui seu próprio contexto; o
Scheduler é o único escritor.

Princípios fundamentais:
- Isolamento por execução
- Eventos estruturados, com timestamp UTC
- Warnings agrupados por target_id
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class RunContext:
    """
    Contexto de execução de uma run.

    Campos canônicos:
    - run_id: identificador único da execução
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + deep-merge)
    - meta: metadados de execução (ex.: store_path, jobs)
    - warnings: warnings por target_id
    - events: log estruturado de eventos
    """

    run_id: str
    created_at: str
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    warnings: Dict[str, List[str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, target_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "target_id": target_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, target_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(target_id, []).append(message)

    def events_for(self, target_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("target_id") == target_id]
