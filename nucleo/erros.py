class RetentativaError(Exception):
    """Erro base da retentativa seletiva."""


class FlakyConfigurationError(RetentativaError):
    """
    Declaração de região flaky inválida (motivo vazio, max_retries negativo...).

    É fatal: o executor interrompe a execução inteira em vez de tratar como
    falha de teste comum.
    """


class NestedFlakyRegionError(FlakyConfigurationError):
    """Tentativa de abrir uma região flaky dentro de outra ainda ativa."""
