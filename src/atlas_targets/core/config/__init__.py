# src/atlas_targets/core/config/__init__.py

"""
Camada de configuração do Atlas Targets.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (YAML/JSON)
    - Resolução da configuração final via deep-merge determinístico
    - Validação em `EngineSettings` tipados
    - Hash canônico (configuração e base dos fingerprints)

Limites explícitos:
    - Não executa targets
    - Não interage com o cache diretamente
"""

from .errors import ConfigError
from .hashing import canonical_json, compute_config_hash, sha256_hex
from .loader import DEFAULT_CONFIG, load_config, load_file, merge_layer
from .settings import EngineSettings, resolve_settings

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG",
    "EngineSettings",
    "canonical_json",
    "compute_config_hash",
    "load_config",
    "load_file",
    "merge_layer",
    "resolve_settings",
    "sha256_hex",
]
