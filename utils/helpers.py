import json
import os

CONFIG_PADRAO = os.path.join(os.path.dirname(__file__), "config.json")


def carregar_config(config_path=None):
    try:
        with open(config_path or CONFIG_PADRAO, 'r', encoding='utf-8') as f:
            config = json.load(f)
        return config
    except FileNotFoundError:
        return None
    except json.JSONDecodeError:
        return None


def obter_secao(config, secao):
    """Retorna uma seção do config (ou dict vazio se config/seção não existirem)."""
    if not config:
        return {}
    return config.get(secao) or {}


def pluralizar(quantidade: int, singular: str, plural: str) -> str:
    return singular if quantidade == 1 else plural
