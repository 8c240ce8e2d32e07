"""
Ledger de retentativas - registro de todas as falhas suprimidas da execução.

Dois backends com o mesmo contrato:
- RetryLedger: em memória, um único lock serializa o mapa inteiro (baixa contenção).
- RedisRetryLedger: para workers em processos separados; só usa comandos
  atômicos do Redis (HSET, HSETNX, HINCRBY, SADD, SREM) e uma transação
  WATCH/MULTI para conferir o teto e registrar de uma vez, então duas
  supressões concorrentes nunca perdem atualização nem duplicam registro.
"""

import json
import threading
from typing import Dict, List, Optional
import redis
from loguru import logger
from dados.dataclass import FlakyPolicy, RetryRecord, TestIdentity


def _ordenar(registros: List[RetryRecord]) -> List[RetryRecord]:
    # Ordem determinística (nome decrescente) para relatórios reprodutíveis
    return sorted(registros, key=lambda r: (r.identity.nome, r.identity.seletor), reverse=True)


class RetryLedger:
    def __init__(self):
        self._registros: Dict[TestIdentity, RetryRecord] = {}
        self._pendentes: List[TestIdentity] = []
        self.lock = threading.Lock()

    def _registrar(self, identity: TestIdentity, policy: FlakyPolicy) -> int:
        # Chamado com self.lock já adquirido
        registro = self._registros.get(identity)
        if registro is None:
            registro = RetryRecord(identity=identity, policy=policy)
            self._registros[identity] = registro
        else:
            registro.policy = policy
            registro.max_retries_allowed = policy.effective_max_retries
        if identity not in self._pendentes:
            self._pendentes.append(identity)
        return registro.attempted_retries

    def record_suppressed(self, identity: TestIdentity, policy: FlakyPolicy) -> int:
        """Cria/atualiza o registro e o marca para o próximo reagendamento."""
        with self.lock:
            tentativas = self._registrar(identity, policy)

        logger.debug(f"[Ledger] Falha suprimida registrada para '{identity.nome}' (retentativas: {tentativas})")
        return tentativas

    def suppress_if_below_cap(self, identity: TestIdentity, policy: FlakyPolicy) -> Optional[int]:
        """
        Confere o teto e registra a supressão sob o mesmo lock.
        Devolve as retentativas já feitas, ou None se o teto foi atingido.
        """
        with self.lock:
            registro = self._registros.get(identity)
            if registro is not None and registro.attempted_retries >= policy.effective_max_retries:
                return None
            tentativas = self._registrar(identity, policy)

        logger.debug(f"[Ledger] Falha suprimida registrada para '{identity.nome}' (retentativas: {tentativas})")
        return tentativas

    def get(self, identity: TestIdentity) -> Optional[RetryRecord]:
        with self.lock:
            registro = self._registros.get(identity)
            return RetryRecord(**vars(registro)) if registro else None

    def cap_reached(self, identity: TestIdentity) -> bool:
        with self.lock:
            registro = self._registros.get(identity)
            return registro is not None and registro.cap_reached

    def all_entries(self) -> List[RetryRecord]:
        """Snapshot somente leitura (cópias) de todos os registros."""
        with self.lock:
            copias = [RetryRecord(**vars(r)) for r in self._registros.values()]
        return _ordenar(copias)

    def take_pending(self) -> List[RetryRecord]:
        """
        Retira os registros pendentes desde a última fronteira de suite e
        incrementa o contador de retentativas de cada um.
        """
        reagendar = []
        with self.lock:
            pendentes, self._pendentes = self._pendentes, []
            for identity in pendentes:
                registro = self._registros[identity]
                if registro.cap_reached:
                    logger.warning(f"[Ledger] '{identity.nome}' já atingiu o teto e não será reagendado.")
                    continue
                registro.attempted_retries += 1
                reagendar.append(RetryRecord(**vars(registro)))
        return _ordenar(reagendar)

    def __len__(self):
        with self.lock:
            return len(self._registros)


class RedisRetryLedger:
    """
    Mesmo contrato do RetryLedger, com o estado em três chaves Redis:
      <prefixo>:registros   hash  chave -> JSON (identidade + política)
      <prefixo>:tentativas  hash  chave -> int
      <prefixo>:pendentes   set   chaves aguardando reagendamento
    """

    def __init__(self, redis_client: redis.Redis, prefixo: str = "retentativa"):
        self.redis_client = redis_client
        self.k_registros = f"{prefixo}:registros"
        self.k_tentativas = f"{prefixo}:tentativas"
        self.k_pendentes = f"{prefixo}:pendentes"

    @staticmethod
    def _serializar(identity: TestIdentity, policy: FlakyPolicy) -> str:
        return json.dumps({
            "suite": identity.suite,
            "funcao": identity.funcao,
            "seletor": identity.seletor,
            "fixable": policy.fixable,
            "reason": policy.reason,
            "max_retries": policy.max_retries,
        }, ensure_ascii=False)

    def _montar(self, chave: str, bruto: str) -> RetryRecord:
        dados = json.loads(bruto)
        identity = TestIdentity(dados["suite"], dados["funcao"], dados["seletor"])
        policy = FlakyPolicy(fixable=dados["fixable"], reason=dados["reason"], max_retries=dados["max_retries"])
        tentativas = self.redis_client.hget(self.k_tentativas, chave)
        return RetryRecord(identity=identity, policy=policy, attempted_retries=int(tentativas or 0))

    def record_suppressed(self, identity: TestIdentity, policy: FlakyPolicy) -> int:
        chave = identity.chave
        self.redis_client.hset(self.k_registros, chave, self._serializar(identity, policy))
        self.redis_client.hsetnx(self.k_tentativas, chave, 0)
        self.redis_client.sadd(self.k_pendentes, chave)
        tentativas = int(self.redis_client.hget(self.k_tentativas, chave) or 0)
        logger.debug(f"[Ledger] Falha suprimida registrada no Redis para '{identity.nome}' (retentativas: {tentativas})")
        return tentativas

    def suppress_if_below_cap(self, identity: TestIdentity, policy: FlakyPolicy) -> Optional[int]:
        """
        Confere o teto e registra numa transação WATCH/MULTI: se outro processo
        alterar o contador no meio, o redis-py refaz a função.
        """
        chave = identity.chave
        teto = policy.effective_max_retries

        def _registrar(pipe):
            tentativas = int(pipe.hget(self.k_tentativas, chave) or 0)
            if tentativas >= teto:
                return None
            pipe.multi()
            pipe.hset(self.k_registros, chave, self._serializar(identity, policy))
            pipe.hsetnx(self.k_tentativas, chave, 0)
            pipe.sadd(self.k_pendentes, chave)
            return tentativas

        tentativas = self.redis_client.transaction(_registrar, self.k_tentativas, value_from_callable=True)
        if tentativas is not None:
            logger.debug(f"[Ledger] Falha suprimida registrada no Redis para '{identity.nome}' (retentativas: {tentativas})")
        return tentativas

    def get(self, identity: TestIdentity) -> Optional[RetryRecord]:
        bruto =self.redis_client.hget(self.k_registros, identity.chave)
        return self._montar(identity.chave, bruto) if bruto else None

    def cap_reached(self, identity: TestIdentity) -> bool:
        registro = self.get(identity)
        return registro is not None and registro.cap_reached

    def all_entries(self) -> List[RetryRecord]:
        todos = self.redis_client.hgetall(self.k_registros) or {}
        return _ordenar([self._montar(chave, bruto) for chave, bruto in todos.items()])

    def take_pending(self) -> List[RetryRecord]:
        reagendar = []
        for chave in self.redis_client.smembers(self.k_pendentes):
            # SREM devolve 1 só para quem removeu: cada chave é reagendada uma vez
            if not self.redis_client.srem(self.k_pendentes, chave):
                continue
            bruto = self.redis_client.hget(self.k_registros, chave)
            if not bruto:
                continue
            registro = self._montar(chave, bruto)
            if registro.cap_reached:
                logger.warning(f"[Ledger] '{registro.identity.nome}' já atingiu o teto e não será reagendado.")
                continue
            registro.attempted_retries = int(self.redis_client.hincrby(self.k_tentativas, chave, 1))
            reagendar.append(registro)
        return _ordenar(reagendar)

    def limpar(self):
        """Remove as chaves da execução (início de uma nova execução)."""
        self.redis_client.delete(self.k_registros, self.k_tentativas, self.k_pendentes)

    def __len__(self):
        return len(self.redis_client.hgetall(self.k_registros) or {})
