from types import SimpleNamespace
import pytest
from dados.dataclass import TestIdentity, fixable, non_fixable
from nucleo.classificador import FailureClassifier
from nucleo.erros import FlakyConfigurationError
from nucleo.ledger import RetryLedger
from nucleo.regiao_flaky import FlakyRegionTracker


def nova_instancia(nome="T1", retry_count=0):
    identity = TestIdentity("Api", nome)
    return SimpleNamespace(identity=identity, tracker=FlakyRegionTracker(identity.nome), retry_count=retry_count)


def falhar_na_regiao(instancia, policy):
    try:
        with instancia.tracker.region(policy):
            raise AssertionError("timeout")
    except AssertionError as e:
        return e


@pytest.fixture
def ledger():
    return RetryLedger()


def test_falha_fora_da_regiao_propaga(ledger):
    classificador = FailureClassifier(ledger)
    assert classificador.on_failure_raised(nova_instancia(), AssertionError("real")) is False
    assert ledger.all_entries() == []


def test_falha_na_regiao_e_suprimida(ledger):
    classificador = FailureClassifier(ledger)
    instancia = nova_instancia()
    falha = falhar_na_regiao(instancia, non_fixable("flaky API", max_retries=2))
    assert classificador.on_failure_raised(instancia, falha) is True
    registro = ledger.get(instancia.identity)
    assert registro.attempted_retries == 0
    assert registro.policy.reason == "flaky API"


def test_teto_atingido_propaga(ledger):
    classificador = FailureClassifier(ledger)
    policy = fixable("race")

    primeira = nova_instancia()
    assert classificador.on_failure_raised(primeira, falhar_na_regiao(primeira, policy)) is True
    ledger.take_pending()

    retentativa = nova_instancia(retry_count=1)
    assert classificador.on_failure_raised(retentativa, falhar_na_regiao(retentativa, policy)) is False
    assert ledger.get(retentativa.identity).attempted_retries == 1


def test_historico_nao_afeta_falha_fora_da_regiao(ledger):
    classificador = FailureClassifier(ledger)
    primeira = nova_instancia()
    classificador.on_failure_raised(primeira, falhar_na_regiao(primeira, non_fixable("API", max_retries=5)))
    ledger.take_pending()

    retentativa = nova_instancia(retry_count=1)
    assert classificador.on_failure_raised(retentativa, RuntimeError("bug de verdade")) is False


def test_erro_de_configuracao_nunca_e_suprimido(ledger):
    classificador = FailureClassifier(ledger)
    instancia = nova_instancia()
    instancia.tracker.enter_flaky(fixable("race"))
    assert classificador.on_failure_raised(instancia, FlakyConfigurationError("x")) is False
    assert ledger.all_entries() == []
