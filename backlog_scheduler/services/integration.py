import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from ..gemini.client import GenerationError
from ..models.config import RetryPolicy, SchedulingConfig
from ..models.entities import Board, Issue, Iteration, ScheduleResult, WorkItem
from .dependencies import sanitize_dependency_graph
from .history import AuditLog, utc_now
from .resolver import DependencyResolver, EmptyDependencyResolver
from .retry import call_with_retry
from .scheduler import BacklogScheduler


class SchedulingUnavailableError(Exception):
    """O agendamento não pôde ser executado; nada foi alterado"""


class AutoSchedulingService:
    """Orquestra resolução de dependências, agendamento e aplicação no quadro"""

    def __init__(
        self,
        config: SchedulingConfig,
        resolver: Optional[DependencyResolver] = None,
        retry_policy: Optional[RetryPolicy] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Inicializa o serviço de agendamento automático

        Args:
            config: Configuração de agendamento
            resolver: Fonte das dependências entre issues
            retry_policy: Política de novas tentativas da resolução de dependências
            audit_log: Histórico onde as alterações são registradas
            clock: Relógio usado no histórico
            sleep: Função de espera entre tentativas
        """
        self.config = config
        self.resolver = resolver or EmptyDependencyResolver()
        self.retry_policy = retry_policy or RetryPolicy()
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.clock = clock
        self.sleep = sleep
        self.scheduler = BacklogScheduler(config)

    @staticmethod
    def build_work_items(issues: Sequence[Issue]) -> List[WorkItem]:
        """Converte as issues do backlog em itens de trabalho"""
        return [issue.to_work_item() for issue in issues]

    def plan(self, issues: Sequence[Issue], iterations: Sequence[Iteration]) -> ScheduleResult:
        """
        Calcula o agendamento das issues sem aplicá-lo

        Args:
            issues: Issues a agendar, em ordem de prioridade
            iterations: Sprints existentes

        Returns:
            ScheduleResult: Atribuições e lista final de sprints

        Raises:
            SchedulingUnavailableError: Se as dependências não puderem ser resolvidas
        """
        items = self.build_work_items(issues)
        if not items:
            return self.scheduler.schedule(items, {}, iterations)

        try:
            raw_graph = call_with_retry(
                lambda: self.resolver.resolve(issues),
                self.retry_policy,
                "Resolução de dependências",
                sleep=self.sleep,
            )
        except GenerationError as e:
            logger.error(f"Agendamento abandonado, dependências indisponíveis: {e}")
            raise SchedulingUnavailableError(
                "Agendamento indisponível, tente novamente mais tarde"
            ) from e

        graph = sanitize_dependency_graph(raw_graph, items)
        return self.scheduler.schedule(items, graph, iterations)

    def schedule_board(self, board: Board) -> Tuple[Board, ScheduleResult]:
        """
        Agenda o backlog do quadro

        O quadro recebido nunca é alterado.

        Returns:
            Tuple[Board, ScheduleResult]: Novo quadro com o resultado aplicado e o resultado

        Raises:
            SchedulingUnavailableError: Se as dependências não puderem ser resolvidas
        """
        backlog = board.get_backlog()
        logger.info(f"Backlog com {len(backlog)} issues para agendamento")
        result = self.plan(backlog, board.sprints)
        return self.apply(board, result), result

    def apply(self, board: Board, result: ScheduleResult) -> Board:
        """Aplica um resultado de agendamento sobre uma cópia do quadro"""
        updated = board.model_copy(deep=True)
        if not result.assignments:
            return updated

        timestamp = self.clock()
        known_ids = {sprint.id for sprint in board.sprints}
        updated.sprints = [iteration.model_copy() for iteration in result.iterations]

        for iteration in updated.sprints:
            if iteration.id not in known_ids:
                self.audit_log.record(
                    iteration.id, "sprint criada", iteration.model_dump(mode="json"), timestamp
                )

        issues_by_id = {issue.id: issue for issue in updated.issues}
        for assignment in result.assignments:
            issue = issues_by_id[assignment.item_id]
            issue.sprint = assignment.iteration_id
            self.audit_log.record(
                issue.id,
                f"agendada na sprint {assignment.iteration_id}",
                issue.model_dump(mode="json"),
                timestamp,
            )

        for epic in updated.epics:
            epic.status = updated.calculate_epic_status(epic.id)

        logger.info(f"Resultado aplicado: {len(result.assignments)} issues agendadas")
        return updated
