# src/atlas_targets/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade forense de runs no Atlas Targets.

O Manifest consolida, de forma determinística e auditável:
    - metadados da run (run_id, started_at, versão)
    - hashes semânticos de entradas (configuração e plano)
    - estado final de cada target (inclusive sub-targets)
    - Event Log ordenado de eventos explícitos

Eventos canônicos:
    - target_started   → comando despachado ao pool
    - target_finished  → status terminal de sucesso (built | up_to_date)
    - target_failed    → comando ou expansão falhou
    - target_blocked   → dependência transitiva falhou
    - target_expanded  → target dinâmico expandido em sub-targets
    - cache_warning    → entrada de cache ilegível tratada como miss

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico
    - Nenhum evento é emitido implicitamente

Invariantes:
    - `events` é sempre uma lista ordenada pela ordem de chamada
    - `targets` é sempre um dicionário indexado por target_id

Limites explícitos:
    - Não executa targets
    - Não decide políticas de execução
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from atlas_targets.core.cache.store import atomic_write_bytes


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """
    Normaliza um timestamp para timezone-aware em UTC.

    Timestamps timezone-naive são assumidos como UTC; os demais são
    convertidos.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    """Duração em milissegundos, nunca negativa."""
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class AtlasManifest:
    """
    Manifest v1 — registro forense de uma run.

    Campos principais:
        - run: metadados da execução (run_id, started_at, atlas_version)
        - inputs: hashes semânticos de configuração e plano
        - targets: estado final de cada target
        - events: Event Log ordenado de eventos explícitos

    Invariantes:
        - A estrutura completa é serializável em JSON
        - `from_dict(to_dict())` reconstrói um Manifest equivalente
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "targets": {k: dict(v) for k, v in self.targets.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AtlasManifest":
        """Reconstrução permissiva: campos ausentes viram estruturas vazias."""
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            targets={k: dict(v) for k, v in (data.get("targets", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("event_type") == event_type]


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    atlas_version: str,
    config_hash: str,
    plan_hash: str,
) -> AtlasManifest:
    """
    Cria o Manifest inicial de uma run.

    ⚠️ Importante: esta função **não emite eventos implicitamente**. O Event
    Log inicia vazio e só é preenchido por chamadas explícitas.

    Args:
        run_id (str): Identificador único da run.
        started_at (datetime): Timestamp de início.
        atlas_version (str): Versão do Atlas Targets.
        config_hash (str): Hash da configuração efetiva.
        plan_hash (str): Hash do plano compilado.

    Returns:
        AtlasManifest: Manifest com `targets` e `events` vazios.
    """
    started_at = _ensure_tzaware_utc(started_at)
    return AtlasManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "atlas_version": atlas_version,
        },
        inputs={
            "config_hash": config_hash,
            "plan_hash": plan_hash,
        },
        targets={},
        events=[],
    )


def add_event(
    manifest: AtlasManifest,
    *,
    event_type: str,
    ts: datetime,
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Adiciona um evento explícito ao Event Log do Manifest.

    Cada chamada adiciona exatamente um evento; eventos não são reordenados
    nem deduplicados.

    Args:
        manifest (AtlasManifest): Manifest a ser atualizado.
        event_type (str): Tipo semântico do evento.
        ts (datetime): Timestamp do evento.
        target_id (Optional[str]): Target associado, se aplicável.
        payload (Optional[Dict[str, Any]]): Dados adicionais.
    """
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if target_id is not None:
        ev["target_id"] = target_id
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def target_started(manifest: AtlasManifest, *, target_id: str, kind: str, ts: datetime) -> None:
    """Marca o target como `running` e registra `target_started`."""
    t = manifest.targets.setdefault(target_id, {"target_id": target_id})
    t.update({"kind": kind, "status": "running", "started_at": _iso(ts)})
    add_event(manifest, event_type="target_started", ts=ts, target_id=target_id)


def target_finished(
    manifest: AtlasManifest,
    *,
    target_id: str,
    kind: str,
    status: str,
    ts: datetime,
    fingerprint: Optional[str] = None,
) -> None:
    """
    Registra a conclusão bem-sucedida de um target.

    `status` é `built` (comando executado nesta run) ou `up_to_date` (cache
    hit). A duração só é calculada quando houve `target_started`.
    """
    t = manifest.targets.setdefault(target_id, {"target_id": target_id})
    t.update({"kind": kind, "status": status, "finished_at": _iso(ts)})
    if fingerprint is not None:
        t["fingerprint"] = fingerprint

    started = t.get("started_at")
    if isinstance(started, str):
        try:
            t["duration_ms"] = _ms_between(datetime.fromisoformat(started), ts)
        except ValueError:
            pass

    add_event(manifest, event_type="target_finished", ts=ts, target_id=target_id, payload={"status": status})


def target_failed(manifest: AtlasManifest, *, target_id: str, kind: str, ts: datetime, error: Dict[str, Any]) -> None:
    t = manifest.targets.setdefault(target_id, {"target_id": target_id})
    t.update({"kind": kind, "status": "errored", "finished_at": _iso(ts), "error": error})
    add_event(manifest, event_type="target_failed", ts=ts, target_id=target_id, payload={"error": error})


def target_blocked(manifest: AtlasManifest, *, target_id: str, kind: str, ts: datetime, dependency: str) -> None:
    t = manifest.targets.setdefault(target_id, {"target_id": target_id})
    t.update({"kind": kind, "status": "blocked", "blocked_by": dependency})
    add_event(manifest, event_type="target_blocked", ts=ts, target_id=target_id, payload={"dependency": dependency})


def target_expanded(
    manifest: AtlasManifest,
    *,
    target_id: str,
    ts: datetime,
    children: List[str],
    total: int,
) -> None:
    """Registra a expansão de um target dinâmico (materializados vs. total gerado)."""
    t = manifest.targets.setdefault(target_id, {"target_id": target_id})
    t.update({"kind": "dynamic", "children": list(children), "total": total})
    add_event(
        manifest,
        event_type="target_expanded",
        ts=ts,
        target_id=target_id,
        payload={"materialized": len(children), "total": total},
    )


def cache_warning(manifest: AtlasManifest, *, target_id: str, ts: datetime, reason: str) -> None:
    add_event(manifest, event_type="cache_warning", ts=ts, target_id=target_id, payload={"reason": reason})


def save_manifest(manifest: AtlasManifest, path: Path) -> None:
    """
    Persiste o Manifest em JSON determinístico (`sort_keys=True`).

    Diretórios intermediários são criados automaticamente. A escrita usa
    stage-then-commit do cache store, de modo que um Manifest parcial nunca
    fica legível.

    Raises:
        OSError: Falha ao criar diretórios ou escrever o arquivo.
        TypeError: Conteúdo não serializável em JSON.
    """
    data = json.dumps(manifest.to_dict(), ensure_ascii=False, indent=2, sort_keys=True)
    atomic_write_bytes(Path(path), data.encode("utf-8"))


def load_manifest(path: Path) -> AtlasManifest:
    """
    Carrega um Manifest persistido.

    Raises:
        OSError: Falha de leitura.
        json.JSONDecodeError: JSON inválido.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return AtlasManifest.from_dict(data)
