import argparse
import importlib
import os
import sys
import traceback
from loguru import logger

from dados.dataclass import configurar_retry_settings
from utils.helpers import carregar_config, obter_secao
from utils.status_display import formatar_resumo
from nucleo.contexto import RunContext, criar_ledger
from nucleo.erros import FlakyConfigurationError
from workers.executor import ExecutorTestes, RegistroTestes, descobrir_suite


# Função de filtro para o console: detalhes de cada tentativa ficam só no arquivo
def filtro_logs_importantes(nivel="INFO"):
    """Cria o filtro do console: mostra apenas `nivel` e acima."""
    minimo = logger.level(nivel).no

    def filtro(record):
        return record["level"].no >= minimo

    return filtro


def configurar_logger(config):
    log_cfg = obter_secao(config, "log_settings")
    nivel = str(log_cfg.get("nivel", "INFO")).upper()
    nivel_invalido = False
    try:
        filtro = filtro_logs_importantes(nivel)
    except ValueError:
        nivel, nivel_invalido = "INFO", True
        filtro = filtro_logs_importantes(nivel)

    logger.remove()
    logger.add(
        sink=sys.stdout,
        format="{time:HH:mm:ss} | {level:<8} | {message}",
        level=nivel,
        filter=filtro,
        enqueue=True
    )
    logger.add(
        log_cfg.get("arquivo", "logs/retentativas.log"),
        rotation="10 MB",
        retention="5 days",
        level="DEBUG",
        format="{time:DD-MM-YYYY HH:mm:ss} | {level:<7} | {thread.name} | {file}:{line} | {message}",
        enqueue=True
    )
    if nivel_invalido:
        logger.warning(f"Nível de log '{log_cfg['nivel']}' desconhecido. Usando INFO.")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Executa testes com retentativa seletiva de regiões flaky.")
    parser.add_argument("modulo", help="Módulo com as subclasses de RetryableTestCase (ex: testes.checkout)")
    parser.add_argument("--workers", type=int, default=None, help="Quantidade de workers paralelos")
    parser.add_argument("--config", default=None, help="Caminho alternativo do config.json")
    args = parser.parse_args(argv)

    config = carregar_config(args.config)
    if not config:
        config = {}
    configurar_logger(config)
    if not config:
        logger.warning("config.json não encontrado ou inválido. Usando valores padrão.")

    exec_cfg = obter_secao(config, "execution_settings")
    workers = args.workers or int(os.environ.get('RETRY_WORKERS', exec_cfg.get('workers', 4)))

    try:
        modulo = importlib.import_module(args.modulo)
    except ImportError as e:
        logger.critical(f"Não foi possível importar o módulo de testes '{args.modulo}': {e}")
        return 2

    try:
        configurar_retry_settings(config)
        registro = RegistroTestes()
        suite = descobrir_suite(modulo, registro)
        contexto = RunContext(criar_teste=registro.criar_teste, ledger=criar_ledger(config), config=config)

        logger.info(f"Iniciando execução de '{suite.nome}' com {workers} worker(s)...")
        resultado = ExecutorTestes(contexto, workers=workers).executar(suite)

    except FlakyConfigurationError as e:
        logger.critical(f"Erro de configuração de região flaky: {e}")
        return 2

    except KeyboardInterrupt:
        logger.warning("Execução interrompida pelo usuário (Ctrl+C).")
        return 1

    except Exception as e:
        # Ex.: backend de ledger desconhecido ou Redis fora do ar
        logger.critical(f"Erro fatal ao preparar ou executar os testes: {e}\n{traceback.format_exc()}")
        return 2

    finally:
        logger.complete()

    print(formatar_resumo(resultado, contexto.ledger.all_entries()))
    return 0 if resultado.passed else 1


if __name__ == "__main__":
    sys.exit(main())
