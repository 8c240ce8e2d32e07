from typing import Callable, Optional
from loguru import logger
from dados.dataclass import Suite, TestIdentity
from utils.helpers import pluralizar


class RetryScheduler:
    """
    Na fronteira de fim de suite, monta uma nova suite só com os testes cuja
    falha foi suprimida, cada um com o contador de retentativa incrementado.

    `criar_teste(identity, retry_count)` é a fábrica do host.
    """

    def __init__(self, ledger, criar_teste: Callable[[TestIdentity, int], object]):
        self.ledger = ledger
        self.criar_teste = criar_teste

    def on_suite_finished(self, suite: Suite) -> Optional[Suite]:
        registros = self.ledger.take_pending()
        if not registros:
            logger.debug(f"[Agendador] Suite '{suite.nome}' terminou sem falhas suprimidas.")
            return None

        testes = []
        for registro in registros:
            teste = self.criar_teste(registro.identity, registro.attempted_retries)
            testes.append(teste)
            logger.info(
                f"[Agendador] Reagendando '{registro.identity.nome}' "
                f"(retentativa {registro.attempted_retries}/{registro.max_retries_allowed})"
            )

        nome = f"Retrying {len(testes)} failed {pluralizar(len(testes), 'test', 'tests')}"
        logger.success(f"[Agendador] Suite '{nome}' criada após '{suite.nome}'.")
        return Suite(nome=nome, testes=testes)
