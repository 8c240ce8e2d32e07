import os
import redis
from loguru import logger
from utils.helpers import obter_secao
from utils.retry import retry


@retry((redis.exceptions.ConnectionError,), tries=5, delay=1, backoff=2, logger=logger)
def get_redis(host: str, port: int, db: int = 0, decode_responses: bool = True) -> redis.Redis:
    """Cliente Redis já validado com PING; tenta de novo se o servidor ainda não subiu."""
    cliente = redis.Redis(host=host, port=port, db=db, decode_responses=decode_responses)
    cliente.ping()
    logger.success(f"[Ledger] Backend Redis conectado em {host}:{port} (db={db})")
    return cliente


def conectar_redis(config=None) -> redis.Redis:
    """
    Conecta ao Redis do ledger compartilhado. REDIS_HOST, REDIS_PORT e
    REDIS_DB no ambiente têm prioridade sobre `redis_settings` do config.
    """
    redis_cfg = obter_secao(config, "redis_settings")
    host = os.environ.get('REDIS_HOST', redis_cfg.get('host', 'localhost'))
    port = int(os.environ.get('REDIS_PORT', redis_cfg.get('port', 6379)))
    db = int(os.environ.get('REDIS_DB', redis_cfg.get('db', 0)))
    logger.info(f"[Ledger] Usando backend Redis ({host}:{port}, db={db}) para o ledger de retentativas")
    return get_redis(host=host, port=port, db=db)
