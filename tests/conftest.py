# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas Targets.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas
- Workspaces isolados em diretório temporário
- contexto de execução controlado (RunContext)
- planos pequenos (estático + dinâmico) usados em vários módulos

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Comandos de teste são funções puras; execuções são observadas pelo
      `RunReport.executed`, nunca por contadores globais (contadores
      capturados por closure entrariam no fingerprint do comando)
    - Cada Workspace usa seu próprio `tmp_path`

Invariantes:
    - Nenhuma fixture executa run por conta própria
    - Nenhuma fixture escreve fora de `tmp_path`
    - Todas as fixtures são seguras para execução em paralelo

Limites explícitos:
    - Não substituir testes de integração (ver tests/e2e)
    - Não conter lógica condicional complexa
"""

from datetime import datetime, timezone

import pytest

from atlas_targets import Workspace, map_over, target
from atlas_targets.core.run_context import RunContext


# =====================================================
# Config
# =====================================================

@pytest.fixture
def project_like_config_yaml() -> str:
    """
    YAML de configuração de projeto semelhante ao uso real.

    Usado para validar leitura em YAML e merge sobre `DEFAULT_CONFIG`.
    """
    return """
engine:
  jobs: 2
  max_expand: null
store:
  path: .cache_targets
trace:
  enabled: true
""".lstrip()


@pytest.fixture
def project_like_local_yaml() -> str:
    """YAML local de overrides (maior precedência que o arquivo de projeto)."""
    return """
engine:
  jobs: 4
manifest:
  enabled: false
""".lstrip()


# =====================================================
# Workspace / RunContext
# =====================================================

@pytest.fixture
def workspace(tmp_path):
    """Workspace isolado com store em `tmp_path/.atlas_targets`."""
    ws = Workspace(tmp_path)
    ws.open()
    yield ws
    if ws.store.root.exists():
        ws.close()


@pytest.fixture
def reopen(tmp_path):
    """
    Fábrica de Workspaces novos sobre o mesmo diretório.

    Simula processos distintos: nada de memória é compartilhado entre runs,
    apenas o cache store persistido.
    """
    opened = []

    def _open(**kwargs):
        ws = Workspace(tmp_path, **kwargs).open()
        opened.append(ws)
        return ws

    yield _open
    for ws in opened:
        if ws.store.root.exists():
            ws.close()


@pytest.fixture
def dummy_ctx() -> RunContext:
    """RunContext mínimo e determinístico."""
    return RunContext(
        run_id="test-run",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat(),
        config={"engine": {"jobs": 1}},
        meta={},
    )


# =====================================================
# Planos
# =====================================================

def make_numbers_plan(values):
    """
    Plano canônico: `data` → `doubled` (map sobre `data`) → `total`.

    `values` entra no fingerprint de `data` via closure: trocar os valores
    invalida `data` e tudo que depende dele.
    """
    return [
        target("data", lambda: list(values)),
        target("doubled", lambda data: [x * 2 for x in data], map_over("data", trace="data")),
        target("total", lambda doubled: sum(doubled)),
    ]


@pytest.fixture
def numbers_plan():
    return make_numbers_plan([1, 2, 3])


@pytest.fixture
def numbers_plan_factory():
    """Fábrica de `make_numbers_plan` para testes de invalidação."""
    return make_numbers_plan
