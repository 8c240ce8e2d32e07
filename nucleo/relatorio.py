import json
import os
from loguru import logger
from utils.retry import retry


class ReportEmitter:
    """
    Grava o conteúdo final do ledger em <result_bundle_dir>/<arquivo>.

    Formato:
        {"retries": [{"name", "maxRetriesAllowed", "attemptedRetries", "reason", "fixable"}, ...]}

    Falha ao gravar nunca derruba a execução: é só registrada no log.
    """

    def __init__(self, ledger, result_bundle_dir: str = "resultados", arquivo: str = "retries.json"):
        self.ledger = ledger
        self.caminho = os.path.join(result_bundle_dir, arquivo)

    def montar(self) -> dict:
        return {"retries": [registro.to_dict() for registro in self.ledger.all_entries()]}

    @retry((OSError,), tries=2, delay=0.1, backoff=1, logger=logger)
    def _gravar(self, payload: dict):
        pasta = os.path.dirname(self.caminho)
        if pasta:
            os.makedirs(pasta, exist_ok=True)
        with open(self.caminho, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    def emitir(self) -> bool:
        try:
            payload = self.montar()
            self._gravar(payload)
        except Exception:
            logger.exception(f"[Relatorio] Falha ao gravar o relatório de retentativas em {self.caminho}.")
            return False

        logger.success(f"[Relatorio] {len(payload['retries'])} entrada(s) gravada(s) em {self.caminho}")
        return True
