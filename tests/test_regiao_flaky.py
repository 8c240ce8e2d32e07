import pytest
from dados.dataclass import FlakyPolicy, fixable, non_fixable
from nucleo.erros import FlakyConfigurationError, NestedFlakyRegionError
from nucleo.regiao_flaky import FlakyRegionTracker


def test_regiao_fecha_no_sucesso():
    tracker = FlakyRegionTracker("S.t")
    policy = non_fixable("API", max_retries=2)
    assert tracker.current_policy() is None
    with tracker.region(policy):
        assert tracker.current_policy() is policy
    assert tracker.current_policy() is None


def test_regiao_fecha_na_falha_e_guarda_politica():
    tracker = FlakyRegionTracker("S.t")
    policy = fixable("race")
    with pytest.raises(AssertionError) as info:
        with tracker.region(policy):
            assert False, "intermitente"
    assert tracker.current_policy() is None
    assert tracker.policy_for(info.value) is policy
    assert tracker.policy_for(AssertionError("outra")) is None


def test_falha_registrada_dentro_da_regiao():
    tracker = FlakyRegionTracker("S.t")
    policy = fixable("race")
    tracker.enter_flaky(policy)
    assert tracker.policy_for(RuntimeError("x")) is policy
    tracker.exit_flaky()
    assert tracker.policy_for(RuntimeError("x")) is None


def test_regiao_aninhada_e_rejeitada():
    tracker = FlakyRegionTracker("S.t")
    externa = non_fixable("externa", max_retries=2)
    with pytest.raises(NestedFlakyRegionError):
        with tracker.region(externa):
            with tracker.region(fixable("interna")):
                pass
    assert tracker.current_policy() is None


def test_enter_flaky_sem_motivo():
    tracker = FlakyRegionTracker("S.t")
    policy = fixable("ok")
    object.__setattr__(policy, "reason", "")
    with pytest.raises(FlakyConfigurationError):
        tracker.enter_flaky(policy)
    assert tracker.current_policy() is None


def test_exit_sem_regiao_nao_falha():
    tracker = FlakyRegionTracker()
    tracker.exit_flaky()
    assert tracker.current_policy() is None


def test_trackers_sao_independentes():
    a, b = FlakyRegionTracker("A.t"), FlakyRegionTracker("B.t")
    with a.region(FlakyPolicy(fixable=True, reason="a")):
        assert b.current_policy() is None
