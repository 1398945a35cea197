import time
from typing import Callable, TypeVar

from loguru import logger

from ..gemini.client import GenerationError
from ..models.config import RetryPolicy

T = TypeVar("T")


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Executa uma chamada ao serviço de geração de texto com novas tentativas

    Apenas `GenerationError` é tratado; a espera cresce exponencialmente a cada
    nova tentativa. Esgotadas as tentativas, o último erro é propagado.

    Args:
        operation: Chamada a executar
        policy: Política de novas tentativas
        description: Descrição da chamada, usada nos logs
        sleep: Função de espera

    Returns:
        T: Resultado da chamada
    """
    attempt = 1
    while True:
        try:
            return operation()
        except GenerationError as e:
            if attempt >= policy.max_attempts:
                logger.error(f"{description} falhou após {attempt} tentativas: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} falhou: {e}. Nova tentativa em {delay:.1f}s "
                f"(tentativa {attempt} de {policy.max_attempts})"
            )
            sleep(delay)
            attempt += 1
