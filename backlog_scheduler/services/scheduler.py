from typing import Iterable, List, Mapping, Optional, Sequence, Set
from loguru import logger

from ..models.config import SchedulingConfig
from ..models.entities import Assignment, Iteration, ScheduleResult, WorkItem
from .iterations import create_iteration


class BacklogScheduler:
    """Serviço responsável pela distribuição automática do backlog nas sprints"""

    def __init__(self, config: SchedulingConfig, iteration_prefix: str = "Sprint"):
        """
        Inicializa o agendador

        Args:
            config: Configuração de agendamento (velocidade por sprint)
            iteration_prefix: Prefixo do nome das sprints criadas automaticamente
        """
        self.config = config
        self.iteration_prefix = iteration_prefix

    def schedule(
        self,
        items: Sequence[WorkItem],
        graph: Optional[Mapping[str, Iterable[str]]],
        iterations: Sequence[Iteration],
    ) -> ScheduleResult:
        """
        Agenda todos os itens nas sprints

        A ordem de `items` é significativa: é a ordem de desempate e a ordem
        usada quando nenhum item está pronto. Nenhuma entrada é alterada.

        Args:
            items: Itens a agendar, em ordem de prioridade
            graph: Grafo saneado id -> pré-requisitos
            iterations: Sprints existentes, em ordem

        Returns:
            ScheduleResult: Atribuições na ordem de agendamento e a lista final de sprints

        Raises:
            ValueError: Se a velocidade configurada não for positiva
        """
        velocity = self.config.velocity
        if velocity is None or velocity <= 0:
            raise ValueError(f"Velocidade inválida: {velocity}. A velocidade deve ser maior que zero")

        final_iterations: List[Iteration] = list(iterations)
        if not items:
            logger.info("Nenhum item no backlog, nada a agendar")
            return ScheduleResult(assignments=[], iterations=final_iterations)

        graph = graph or {}
        remaining: List[WorkItem] = list(items)
        scheduled: Set[str] = set()
        assignments: List[Assignment] = []
        current_index = 0
        remaining_capacity = velocity

        logger.info(
            f"Iniciando agendamento de {len(remaining)} itens em {len(final_iterations)} sprints "
            f"(velocidade {velocity})"
        )

        while remaining:
            position = self._next_ready_index(remaining, graph, scheduled)
            item = remaining.pop(position)

            # Sprint com capacidade cheia aceita qualquer item, mesmo acima da velocidade
            if item.points > remaining_capacity and remaining_capacity < velocity:
                current_index += 1
                remaining_capacity = velocity
                logger.debug(f"Capacidade esgotada, avançando para a sprint de índice {current_index}")

            while current_index >= len(final_iterations):
                new_iteration = create_iteration(final_iterations, self.iteration_prefix)
                final_iterations.append(new_iteration)
                logger.info(f"Sprint criada automaticamente: {new_iteration.name} ({new_iteration.id})")

            iteration = final_iterations[current_index]
            assignments.append(Assignment(item_id=item.id, iteration_id=iteration.id))
            scheduled.add(item.id)
            remaining_capacity -= item.points

            if remaining_capacity < 0:
                logger.warning(
                    f"Item {item.id} ({item.points} pts) excede a velocidade da sprint {iteration.name}"
                )
            logger.info(
                f"Item {item.id} ({item.points} pts) agendado na sprint {iteration.name}. "
                f"Capacidade restante: {remaining_capacity}"
            )

        logger.info(
            f"Agendamento concluído: {len(assignments)} itens em {current_index + 1} sprints, "
            f"{len(final_iterations) - len(iterations)} sprints criadas"
        )
        return ScheduleResult(assignments=assignments, iterations=final_iterations)

    def _next_ready_index(
        self,
        remaining: Sequence[WorkItem],
        graph: Mapping[str, Iterable[str]],
        scheduled: Set[str],
    ) -> int:
        """
        Encontra o próximo item pronto

        Um item está pronto quando todos os seus pré-requisitos já foram agendados.
        Se nenhum estiver pronto (ciclo ou referência pendente), retorna o primeiro item.

        Returns:
            int: Posição do item escolhido em `remaining`
        """
        for position, item in enumerate(remaining):
            if all(dep in scheduled for dep in graph.get(item.id, ())):
                return position

        first = remaining[0]
        pending = sorted(dep for dep in graph.get(first.id, ()) if dep not in scheduled)
        logger.warning(
            f"Nenhum item pronto para agendamento (possível ciclo de dependências). "
            f"Forçando item {first.id}, pré-requisitos pendentes: {pending}"
        )
        return 0
