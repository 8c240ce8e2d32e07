"""
Host de referência: casos de teste, registro/fábrica de instâncias e um
executor com N workers (threads) consumindo uma fila.

O núcleo (nucleo/) não depende deste módulo; qualquer outro host só precisa
chamar os ganchos do RunContext e oferecer a fábrica `criar_teste`.
"""

import inspect
import queue
import threading
import traceback
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type
from loguru import logger
from dados.dataclass import FlakyPolicy, Suite, TestIdentity
from nucleo.erros import FlakyConfigurationError
from nucleo.regiao_flaky import FlakyRegion, FlakyRegionTracker

PASSOU = "passou"
FALHOU = "falhou"
SUPRIMIDA = "suprimida"


class RetryableTestCase:
    """
    Base dos testes com retentativa seletiva. Cada instância executa um único
    método (o seletor) e carrega o seu próprio rastreador de região flaky.

    Uso:
        class CheckoutTests(RetryableTestCase):
            def test_pagamento(self):
                with self.flaky(non_fixable("gateway instável", max_retries=2)):
                    assert gateway.pagar() == "ok"
    """

    __test__ = False

    def __init__(self, seletor: str, retry_count: int = 0):
        if not callable(getattr(self, seletor, None)):
            raise ValueError(f"{type(self).__qualname__} não tem o método de teste '{seletor}'")
        self.seletor = seletor
        self.retry_count = retry_count
        self.identity = TestIdentity(
            suite=type(self).__qualname__,
            funcao=seletor,
            seletor=f"{type(self).__module__}.{type(self).__qualname__}.{seletor}",
        )
        self.tracker = FlakyRegionTracker(dono=self.identity.nome)

    def flaky(self, policy: FlakyPolicy) -> FlakyRegion:
        return self.tracker.region(policy)

    def setUp(self):
        pass

    def tearDown(self):
        pass

    def executar(self):
        self.setUp()
        try:
            getattr(self, self.seletor)()
        finally:
            self.tearDown()

    def __repr__(self):
        return f"<{self.identity.nome} retry={self.retry_count}>"


class RegistroTestes:
    """Fábrica do host: cria uma nova instância executável a partir da identidade."""

    def __init__(self):
        self._classes: Dict[TestIdentity, Type[RetryableTestCase]] = {}
        self.lock = threading.Lock()

    def registrar(self, classe: Type[RetryableTestCase], seletor: str) -> RetryableTestCase:
        teste = classe(seletor)
        with self.lock:
            self._classes[teste.identity] = classe
        return teste

    def criar_teste(self, identity: TestIdentity, retry_count: int) -> RetryableTestCase:
        with self.lock:
            classe = self._classes.get(identity)
        if classe is None:
            raise KeyError(f"Teste '{identity.nome}' não foi registrado")
        return classe(identity.funcao, retry_count=retry_count)


def descobrir_suite(modulo, registro: RegistroTestes, nome: Optional[str] = None) -> Suite:
    """Monta uma suite com todos os métodos test* das subclasses de RetryableTestCase do módulo."""
    testes = []
    for _, classe in inspect.getmembers(modulo, inspect.isclass):
        if not issubclass(classe, RetryableTestCase) or classe is RetryableTestCase:
            continue
        if classe.__module__ != modulo.__name__:
            continue
        for seletor in sorted(n for n in dir(classe) if n.startswith("test") and callable(getattr(classe, n))):
            testes.append(registro.registrar(classe, seletor))

    logger.info(f"[Executor] {len(testes)} teste(s) encontrados em '{modulo.__name__}'")
    return Suite(nome=nome or modulo.__name__, testes=testes)


@dataclass
class ResultadoTentativa:
    identity: TestIdentity
    retry_count: int
    status: str
    suite: str
    erro: Optional[str] = None


@dataclass
class ResultadoExecucao:
    tentativas: List[ResultadoTentativa] = field(default_factory=list)
    suites: List[str] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def registrar(self, tentativa: ResultadoTentativa):
        with self.lock:
            self.tentativas.append(tentativa)

    def com_status(self, status: str) -> List[ResultadoTentativa]:
        with self.lock:
            return [t for t in self.tentativas if t.status == status]

    @property
    def falhas(self) -> List[ResultadoTentativa]:
        return self.com_status(FALHOU)

    @property
    def suprimidas(self) -> List[ResultadoTentativa]:
        return self.com_status(SUPRIMIDA)

    @property
    def passed(self) -> bool:
        # Falhas suprimidas ficam fora do resultado agregado
        return not self.falhas


class ExecutorTestes:
    """
    Executa uma suite com N workers, espera TODOS terminarem (barreira) e só
    então chama on_suite_finished; repete enquanto houver suite de retentativa.
    """

    def __init__(self, contexto, workers: int = 4):
        self.contexto = contexto
        self.workers = max(1, int(workers))

    def executar(self, suite: Suite) -> ResultadoExecucao:
        resultado = ResultadoExecucao()
        atual = suite
        try:
            while atual is not None:
                self._executar_suite(atual, resultado)
                atual = self.contexto.on_suite_finished(atual)
        finally:
            # Mesmo abortada, o ledger parcial ainda é um relatório válido
            self.contexto.on_run_finished()

        if resultado.passed:
            logger.success(f"[Executor] Execução aprovada ({len(resultado.tentativas)} tentativa(s)).")
        else:
            logger.error(f"[Executor] Execução reprovada: {len(resultado.falhas)} falha(s).")
        return resultado

    def _executar_suite(self, suite: Suite, resultado: ResultadoExecucao):
        logger.info(f"[Executor] Iniciando suite '{suite.nome}' com {len(suite)} teste(s)")
        resultado.suites.append(suite.nome)

        fila = queue.Queue()
        for teste in suite.testes:
            fila.put(teste)

        abortar = threading.Event()
        erros_fatais: List[BaseException] = []

        def worker():
            try:
                while not abortar.is_set():
                    try:
                        teste = fila.get_nowait()
                    except queue.Empty:
                        return
                    try:
                        resultado.registrar(self._executar_teste(teste, suite.nome))
                    except FlakyConfigurationError as e:
                        erros_fatais.append(e)
                        abortar.set()
            except BaseException as e:
                # Worker que morre calado deixaria o resto da fila sem resultado
                logger.critical(
                    f"[Executor] Erro fatal no {threading.current_thread().name}: {e}\n{traceback.format_exc()}"
                )
                erros_fatais.append(e)
                abortar.set()

        quantidade = min(self.workers, len(suite)) or 1
        threads = [
            threading.Thread(target=worker, daemon=True, name=f"Worker-{i + 1}")
            for i in range(quantidade)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        if erros_fatais:
            if isinstance(erros_fatais[0], FlakyConfigurationError):
                logger.critical(f"[Executor] Erro de configuração na suite '{suite.nome}'. Execução interrompida.")
            else:
                logger.critical(f"[Executor] Suite '{suite.nome}' abortada. Execução interrompida.")
            raise erros_fatais[0]

    def _executar_teste(self, teste, nome_suite: str) -> ResultadoTentativa:
        logger.debug(f"[Executor] Executando {teste!r} ({threading.current_thread().name})")
        try:
            teste.executar()
        except FlakyConfigurationError as e:
            logger.critical(f"[Executor] Declaração flaky inválida em '{teste.identity.nome}': {e}")
            raise
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            # pytest.fail, SystemExit e afins também são falhas do teste
            return self._classificar(teste, nome_suite, e)

        return ResultadoTentativa(
            identity=teste.identity,
            retry_count=teste.retry_count,
            status=PASSOU,
            suite=nome_suite,
        )

    def _classificar(self, teste, nome_suite: str, falha: BaseException) -> ResultadoTentativa:
        try:
            suprimida = self.contexto.on_failure_raised(teste, falha)
        except Exception as e:
            logger.critical(
                f"[Executor] Erro ao classificar a falha de '{teste.identity.nome}' ({e}). "
                f"A falha será propagada.\n{traceback.format_exc()}"
            )
            suprimida = False

        if not suprimida:
            pilha = "".join(traceback.format_exception(type(falha), falha, falha.__traceback__))
            logger.debug(f"Stack trace de '{teste.identity.nome}':\n{pilha}")
        return ResultadoTentativa(
            identity=teste.identity,
            retry_count=teste.retry_count,
            status=SUPRIMIDA if suprimida else FALHOU,
            suite=nome_suite,
            erro=f"{type(falha).__name__}: {falha}",
        )
