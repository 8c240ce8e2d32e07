from dataclasses import dataclass, field
from typing import Any, List, Optional
from nucleo.erros import FlakyConfigurationError
from utils.helpers import carregar_config, obter_secao

# Teto padrão dos flakes não corrigíveis, lido do config.json padrão e
# substituído pelo config carregado na execução (configurar_retry_settings)
_retry_cfg = obter_secao(carregar_config(), "retry_settings")
MAX_RETRIES_NAO_CORRIGIVEL_PADRAO = int(_retry_cfg.get("max_retries_nao_corrigivel", 3))


def configurar_retry_settings(config):
    """Aplica `retry_settings` do config da execução aos padrões das políticas."""
    global MAX_RETRIES_NAO_CORRIGIVEL_PADRAO
    retry_cfg = obter_secao(config, "retry_settings")
    if "max_retries_nao_corrigivel" not in retry_cfg:
        return
    valor = int(retry_cfg["max_retries_nao_corrigivel"])
    if valor < 1:
        raise FlakyConfigurationError(f"retry_settings.max_retries_nao_corrigivel inválido ({valor}); mínimo 1.")
    MAX_RETRIES_NAO_CORRIGIVEL_PADRAO = valor


@dataclass(frozen=True)
class TestIdentity:
    """Identifica uma função de teste: suite dona + função + seletor opaco do host."""

    __test__ = False  # evita que o pytest tente coletar a classe

    suite: str
    funcao: str
    seletor: str = ""

    @property
    def nome(self) -> str:
        return f"{self.suite}.{self.funcao}"

    @property
    def chave(self) -> str:
        """Chave estável usada pelos backends do ledger."""
        return f"{self.nome}#{self.seletor}"

    def __lt__(self, other):
        if not isinstance(other, TestIdentity):
            return NotImplemented
        return (self.nome, self.seletor) < (other.nome, other.seletor)

    def __str__(self):
        return self.nome


@dataclass(frozen=True)
class FlakyPolicy:
    fixable: bool
    reason: str
    max_retries: int = 1

    def __post_init__(self):
        # Validação no momento da declaração, nunca na hora do relatório
        if not isinstance(self.reason, str) or not self.reason.strip():
            raise FlakyConfigurationError("Região flaky declarada sem motivo (reason vazio).")
        # Teto 0 suprimiria a falha sem nunca reexecutar o teste
        if self.max_retries < 1:
            raise FlakyConfigurationError(
                f"max_retries inválido ({self.max_retries}) para a região flaky '{self.reason}'; mínimo 1."
            )

    @property
    def effective_max_retries(self) -> int:
        # Flake corrigível tem teto implícito de 1, qualquer que seja o valor pedido
        return 1 if self.fixable else self.max_retries


def fixable(reason: str) -> FlakyPolicy:
    """Flake que se acredita corrigível: no máximo 1 retentativa."""
    return FlakyPolicy(fixable=True, reason=reason, max_retries=1)


def non_fixable(reason: str, max_retries: Optional[int] = None) -> FlakyPolicy:
    """Flake conhecido e não corrigível no momento, com teto configurável."""
    if max_retries is None:
        max_retries = MAX_RETRIES_NAO_CORRIGIVEL_PADRAO
    return FlakyPolicy(fixable=False, reason=reason, max_retries=max_retries)


@dataclass
class RetryRecord:
    identity: TestIdentity
    policy: FlakyPolicy
    attempted_retries: int = 0
    max_retries_allowed: int = field(default=-1)

    def __post_init__(self):
        if self.max_retries_allowed < 0:
            self.max_retries_allowed = self.policy.effective_max_retries

    @property
    def cap_reached(self) -> bool:
        return self.attempted_retries >= self.max_retries_allowed

    def to_dict(self) -> dict:
        """Formato fixo de uma entrada do relatório."""
        return {
            "name": self.identity.nome,
            "maxRetriesAllowed": self.max_retries_allowed,
            "attemptedRetries": self.attempted_retries,
            "reason": self.policy.reason,
            "fixable": self.policy.fixable,
        }


@dataclass
class Suite:
    nome: str
    testes: List[Any] = field(default_factory=list)

    def __len__(self):
        return len(self.testes)
