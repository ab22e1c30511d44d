"""
Settings tipados do engine.

Converte a configuração resolvida (dict) em um `EngineSettings` imutável,
validando tipos e faixas antes de qualquer run começar.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import InvalidSettingError


@dataclass(frozen=True)
class EngineSettings:
    """Parâmetros efetivos de uma run."""

    jobs: int = 1
    max_expand: Optional[int] = None
    store_path: Path = Path(".atlas_targets")
    trace_enabled: bool = True
    manifest_enabled: bool = True

    def with_overrides(self, *, jobs: Optional[int] = None, max_expand: Optional[int] = None) -> "EngineSettings":
        """Aplica argumentos explícitos de `run()` sobre a configuração."""
        out = self
        if jobs is not None:
            out = replace(out, jobs=_validate_jobs(jobs))
        if max_expand is not None:
            out = replace(out, max_expand=max_expand)
        return out


def _validate_jobs(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidSettingError(f"engine.jobs deve ser inteiro >= 1, recebido: {value!r}")
    return value


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name, {}) or {}
    if not isinstance(section, dict):
        raise InvalidSettingError(f"Seção '{name}' deve ser dict, recebido: {type(section).__name__}")
    return section


def resolve_settings(config: Dict[str, Any]) -> EngineSettings:
    """
    Valida a configuração resolvida e produz `EngineSettings`.

    `engine.max_expand` não é validado aqui: um cap inválido falha apenas os
    targets dinâmicos afetados (ExpansionError), não a run inteira.

    Raises:
        InvalidSettingError: Se algum valor tiver tipo ou faixa inválidos.
    """
    engine = _section(config, "engine")
    store = _section(config, "store")
    trace = _section(config, "trace")
    manifest = _section(config, "manifest")

    store_path = store.get("path", ".atlas_targets")
    if not isinstance(store_path, (str, Path)) or not str(store_path).strip():
        raise InvalidSettingError(f"store.path deve ser um caminho não vazio, recebido: {store_path!r}")

    return EngineSettings(
        jobs=_validate_jobs(engine.get("jobs", 1)),
        max_expand=engine.get("max_expand"),
        store_path=Path(store_path),
        trace_enabled=bool(trace.get("enabled", True)),
        manifest_enabled=bool(manifest.get("enabled", True)),
    )
