"""
RunContext - estado de uma execução inteira e os ganchos chamados pelo host.

O host cria um RunContext no início da execução e chama:
    on_failure_raised(instancia, falha) -> bool   # a cada falha
    on_suite_finished(suite) -> Suite | None      # depois que TODOS os workers terminam a suite
    on_run_finished()                             # uma vez, depois das suites de retentativa
"""

import os
from typing import Callable, Optional
from loguru import logger
from dados.dataclass import Suite, TestIdentity
from nucleo.agendador import RetryScheduler
from nucleo.classificador import FailureClassifier
from nucleo.ledger import RedisRetryLedger, RetryLedger
from nucleo.relatorio import ReportEmitter
from utils.helpers import obter_secao


def criar_ledger(config: Optional[dict] = None):
    """Escolhe o backend do ledger pelo config.json (`ledger_settings.backend`)."""
    ledger_cfg = obter_secao(config, "ledger_settings")
    backend = ledger_cfg.get("backend", "memoria")

    if backend == "memoria":
        return RetryLedger()

    if backend == "redis":
        from utils.redis_client import conectar_redis

        ledger = RedisRetryLedger(conectar_redis(config), prefixo=ledger_cfg.get("prefixo", "retentativa"))
        ledger.limpar()
        return ledger

    raise ValueError(f"Backend de ledger desconhecido: '{backend}'")


class RunContext:
    def __init__(
        self,
        criar_teste: Callable[[TestIdentity, int], object],
        ledger=None,
        config: Optional[dict] = None,
    ):
        report_cfg = obter_secao(config, "report_settings")
        result_bundle_dir = os.environ.get('RESULT_BUNDLE_DIR', report_cfg.get('result_bundle_dir', 'resultados'))

        self.ledger = ledger if ledger is not None else criar_ledger(config)
        self.classifier = FailureClassifier(self.ledger)
        self.scheduler = RetryScheduler(self.ledger, criar_teste)
        self.emitter = ReportEmitter(
            self.ledger,
            result_bundle_dir=result_bundle_dir,
            arquivo=report_cfg.get('arquivo', 'retries.json'),
        )
        self.relatorio_emitido = False

    def on_failure_raised(self, instancia, falha: BaseException) -> bool:
        return self.classifier.on_failure_raised(instancia, falha)

    def on_suite_finished(self, suite: Suite) -> Optional[Suite]:
        return self.scheduler.on_suite_finished(suite)

    def on_run_finished(self):
        if self.relatorio_emitido:
            logger.debug("[Contexto] Relatório já emitido nesta execução. Ignorando.")
            return
        self.relatorio_emitido = True
        self.emitter.emitir()
