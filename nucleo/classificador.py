from loguru import logger
from nucleo.erros import FlakyConfigurationError


class FailureClassifier:
    """
    Decide, para cada falha levantada por uma instância de teste, se ela é
    suprimível (dentro de região flaky e abaixo do teto) ou se propaga.

    A instância precisa expor `identity`, `tracker` e `retry_count`.

    Atenção: uma falha suprimida deixa a tentativa com cara de "verde" no
    resultado agregado; a falha fica registrada no ledger e o teste é
    reagendado no fim da suite.
    """

    def __init__(self, ledger):
        self.ledger = ledger

    def on_failure_raised(self, instancia, falha: BaseException) -> bool:
        if isinstance(falha, FlakyConfigurationError):
            # Erro de configuração nunca é classificado: aborta a execução
            return False

        identity = instancia.identity
        policy = instancia.tracker.policy_for(falha)
        if policy is None:
            logger.error(f"[Classificador] Falha fora de região flaky em '{identity.nome}': {falha}")
            return False

        teto = policy.effective_max_retries
        tentativas = self.ledger.suppress_if_below_cap(identity, policy)
        if tentativas is None:
            logger.error(
                f"[Classificador] '{identity.nome}' falhou em '{policy.reason}' e atingiu o teto "
                f"({teto}/{teto}). Falha propagada."
            )
            return False

        logger.warning(
            f"[Classificador] Falha suprimida em '{identity.nome}' (região '{policy.reason}', "
            f"retentativas: {tentativas}/{teto}, tentativa #{instancia.retry_count}). "
            f"A tentativa não conta no resultado; o teste será reexecutado."
        )
        return True
