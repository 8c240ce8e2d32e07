"""
Rastreador de região flaky por instância de teste.

Cada instância de teste tem o seu próprio rastreador; não há estado
compartilhado entre testes, nem entre workers.

Uso:
    rastreador = FlakyRegionTracker()
    with rastreador.region(non_fixable("API instável", max_retries=2)):
        # código tolerante a falha intermitente
        ...
"""

from typing import Optional
from loguru import logger
from dados.dataclass import FlakyPolicy
from nucleo.erros import FlakyConfigurationError, NestedFlakyRegionError


class FlakyRegion:
    """Context manager que abre a região na entrada e a fecha sempre na saída."""

    def __init__(self, tracker: "FlakyRegionTracker", policy: FlakyPolicy):
        self.tracker = tracker
        self.policy = policy

    def __enter__(self):
        self.tracker.enter_flaky(self.policy)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_val is not None and not isinstance(exc_val, FlakyConfigurationError):
            # Guarda a política ativa no momento da falha, porque o host só
            # classifica a exceção depois que a região já foi fechada
            self.tracker._capturar_falha(exc_val, self.policy)
        self.tracker.exit_flaky()
        return False  # Não suprimir exceções


class FlakyRegionTracker:
    def __init__(self, dono: str = ""):
        self.dono = dono
        self._policy: Optional[FlakyPolicy] = None
        self._falha_capturada = None

    def enter_flaky(self, policy: FlakyPolicy):
        """Ativa a região flaky. Erros de declaração são fatais."""
        if not isinstance(policy, FlakyPolicy) or not policy.reason or not policy.reason.strip():
            logger.critical(f"[Regiao] Região flaky sem motivo declarada em '{self.dono}'.")
            raise FlakyConfigurationError(f"Região flaky sem motivo declarada em '{self.dono}'.")
        if self._policy is not None:
            logger.critical(
                f"[Regiao] Região flaky '{policy.reason}' aberta dentro de '{self._policy.reason}' em '{self.dono}'."
            )
            raise NestedFlakyRegionError(
                f"Regiões flaky aninhadas não são permitidas ('{policy.reason}' dentro de '{self._policy.reason}')."
            )
        self._policy = policy
        logger.debug(f"[Regiao] Entrando na região flaky '{policy.reason}' ({self.dono})")

    def exit_flaky(self):
        if self._policy is not None:
            logger.debug(f"[Regiao] Saindo da região flaky '{self._policy.reason}' ({self.dono})")
        self._policy = None

    def current_policy(self) -> Optional[FlakyPolicy]:
        return self._policy

    def region(self, policy: FlakyPolicy) -> FlakyRegion:
        return FlakyRegion(self, policy)

    def _capturar_falha(self, falha: BaseException, policy: FlakyPolicy):
        self._falha_capturada = (falha, policy)

    def policy_for(self, falha: BaseException) -> Optional[FlakyPolicy]:
        """
        Política que governa a falha: a região ativa agora (falha registrada
        sem desempilhar) ou a região de onde a exceção saiu.
        """
        if self._policy is not None:
            return self._policy
        if self._falha_capturada is not None and self._falha_capturada[0] is falha:
            return self._falha_capturada[1]
        return None
