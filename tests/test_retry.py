import pytest
import time
from utils.retry import retry

counter = {"calls": 0}

@retry((RuntimeError,), tries=3, delay=0.1, backoff=1)
def flaky():
    counter["calls"] += 1
    if counter["calls"] < 3:
        raise RuntimeError("fail")
    return "ok"


@retry((OSError,), tries=2, delay=0.01, backoff=1)
def sempre_falha():
    counter["calls"] += 1
    raise OSError("disco cheio")


def test_retry_eventually_succeeds():
    # Reset counter
    counter["calls"] = 0
    assert flaky() == "ok"
    assert counter["calls"] == 3


def test_retry_raises_last_exception_when_exhausted():
    counter["calls"] = 0
    with pytest.raises(OSError, match="disco cheio"):
        sempre_falha()
    assert counter["calls"] == 2


def test_retry_ignores_other_exceptions():
    chamadas = {"n": 0}

    @retry((OSError,), tries=3, delay=0.01)
    def erro_de_valor():
        chamadas["n"] += 1
        raise ValueError("não é transitório")

    with pytest.raises(ValueError):
        erro_de_valor()
    assert chamadas["n"] == 1
