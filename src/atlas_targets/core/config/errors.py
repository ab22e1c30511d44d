# src/atlas_targets/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Atlas Targets.

As exceções aqui definidas representam violações estruturais de
configuração detectadas antes de qualquer run começar.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa erro de target ou de execução
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do Atlas Targets.

    Permite captura genérica de erros de configuração, distinta das falhas
    de compilação do plano e das falhas por target reportadas no RunReport.
    """


class ConfigFileNotFoundError(ConfigError):
    """
    Exceção levantada quando um arquivo de configuração explicitamente
    informado não existe.

    Limites explícitos:
        - Não tenta inferir ou criar o arquivo automaticamente
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo não é suportado.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz do arquivo não é um `dict`.
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos ao aplicar uma camada de configuração.

    Exemplo de conflito:
        - base:     {"engine": {"jobs": 1}}
        - override: {"engine": "fast"}
    """


class InvalidSettingError(ConfigError):
    """
    Exceção levantada quando um valor de configuração tem tipo ou faixa
    inválidos (ex.: `engine.jobs` < 1).
    """
