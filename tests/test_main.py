import json
import sys
import pytest
from loguru import logger
import dados.dataclass as dataclass_mod
from dados.dataclass import fixable, non_fixable
from workers.executor import RetryableTestCase
import main

tentativas = {"login": 0}


class CheckoutTests(RetryableTestCase):
    def test_login_instavel(self):
        tentativas["login"] += 1
        with self.flaky(fixable("sessão expira aleatoriamente")):
            assert tentativas["login"] > 1

    def test_carrinho(self):
        assert [1, 2][-1] == 2


@pytest.fixture
def escrever_config(tmp_path, monkeypatch):
    monkeypatch.delenv("RESULT_BUNDLE_DIR", raising=False)
    monkeypatch.delenv("RETRY_WORKERS", raising=False)
    # main() altera o padrão global dos flakes não corrigíveis
    monkeypatch.setattr(dataclass_mod, "MAX_RETRIES_NAO_CORRIGIVEL_PADRAO", 3)
    tentativas["login"] = 0

    def _escrever(**secoes):
        config = {
            "report_settings": {"result_bundle_dir": str(tmp_path / "bundle"), "arquivo": "retries.json"},
            "ledger_settings": {"backend": "memoria"},
            "log_settings": {"arquivo": str(tmp_path / "logs" / "execucao.log"), "nivel": "INFO"},
        }
        config.update(secoes)
        caminho = tmp_path / "config.json"
        caminho.write_text(json.dumps(config), encoding="utf-8")
        return caminho

    yield _escrever
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def config_path(escrever_config):
    return escrever_config()


def test_main_aprova_execucao_com_flaky(config_path, tmp_path, capsys):
    codigo = main.main([__name__, "--workers", "2", "--config", str(config_path)])

    assert codigo == 0
    assert tentativas["login"] == 2
    relatorio = json.loads((tmp_path / "bundle" / "retries.json").read_text(encoding="utf-8"))
    assert relatorio["retries"] == [{
        "name": "CheckoutTests.test_login_instavel",
        "maxRetriesAllowed": 1,
        "attemptedRetries": 1,
        "reason": "sessão expira aleatoriamente",
        "fixable": True,
    }]
    assert "APROVADA" in capsys.readouterr().out


def test_main_modulo_inexistente(config_path):
    assert main.main(["modulo.que.nao.existe", "--config", str(config_path)]) == 2


def test_main_aplica_teto_padrao_do_config(escrever_config):
    caminho = escrever_config(retry_settings={"max_retries_nao_corrigivel": 7})

    assert main.main([__name__, "--workers", "1", "--config", str(caminho)]) == 0
    assert non_fixable("gateway instável").max_retries == 7


def test_main_teto_padrao_invalido_sai_com_2(escrever_config):
    caminho = escrever_config(retry_settings={"max_retries_nao_corrigivel": 0})
    assert main.main([__name__, "--config", str(caminho)]) == 2


def test_main_backend_desconhecido_sai_com_2(escrever_config, capsys):
    caminho = escrever_config(ledger_settings={"backend": "postgres"})

    assert main.main([__name__, "--config", str(caminho)]) == 2
    assert tentativas["login"] == 0
    assert "Backend de ledger desconhecido: 'postgres'" in capsys.readouterr().out


def test_main_nivel_debug_aparece_no_console(escrever_config, tmp_path, capsys):
    caminho = escrever_config(log_settings={"arquivo": str(tmp_path / "logs" / "debug.log"), "nivel": "DEBUG"})

    assert main.main([__name__, "--workers", "1", "--config", str(caminho)]) == 0
    assert "[Regiao] Entrando na região flaky" in capsys.readouterr().out


def test_filtro_logs_importantes():
    filtro = main.filtro_logs_importantes()
    assert filtro({"level": logger.level("WARNING")})
    assert not filtro({"level": logger.level("DEBUG")})

    filtro_debug = main.filtro_logs_importantes("DEBUG")
    assert filtro_debug({"level": logger.level("DEBUG")})
    assert not filtro_debug({"level": logger.level("TRACE")})
