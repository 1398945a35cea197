from typing import Dict, Iterable, List
from azure.devops.connection import Connection
from azure.devops.v7_1.work_item_tracking.models import JsonPatchOperation, WorkItemClassificationNode
from msrest.authentication import BasicAuthentication
from loguru import logger

from ..models.entities import Issue, IssueType, Iteration, ScheduleResult


class AzureBoardsClient:
    """Cliente para persistência do quadro no Azure Boards"""

    def __init__(self, organization: str, project: str, token: str):
        """
        Inicializa o cliente do Azure DevOps

        Args:
            organization: Nome da organização
            project: Nome do projeto
            token: Token de acesso pessoal (PAT)
        """
        self.organization = organization
        self.project = project
        credentials = BasicAuthentication('', token)
        self.connection = Connection(
            base_url=f"https://dev.azure.com/{organization}",
            creds=credentials
        )
        self.wit_client = self.connection.clients.get_work_item_tracking_client()

        logger.info(f"Cliente Azure DevOps inicializado para {organization}/{project}")

    def _root_path(self, iteration_root: str) -> str:
        """Monta o caminho completo da iteração raiz"""
        return f"{self.project}\\{iteration_root}" if iteration_root else self.project

    def get_backlog_issues(self, area_path: str, iteration_root: str) -> List[Issue]:
        """
        Obtém as User Stories ainda não planejadas

        Uma User Story está no backlog quando sua iteração é a própria iteração raiz.

        Args:
            area_path: Caminho da área do time
            iteration_root: Iteração raiz, relativa ao projeto (ex: 2025\\Q3)

        Returns:
            List[Issue]: Issues do backlog, ordenadas por StackRank
        """
        root_path = self._root_path(iteration_root)
        wiql = f"""
        SELECT [System.Id],
               [System.Title],
               [Microsoft.VSTS.Scheduling.StoryPoints],
               [Microsoft.VSTS.Common.StackRank]
        FROM WorkItems
        WHERE [System.TeamProject] = '{self.project}'
        AND [System.AreaPath] = '{area_path}'
        AND [System.IterationPath] = '{root_path}'
        AND [System.WorkItemType] = 'User Story'
        AND [System.State] NOT IN ('Closed', 'Removed', 'Resolved')
        ORDER BY [Microsoft.VSTS.Common.StackRank] ASC
        """

        results = self.wit_client.query_by_wiql({"query": wiql}).work_items
        if not results:
            logger.warning(f"Nenhuma User Story no backlog de {area_path}")
            return []

        # get_work_items não garante a ordem da consulta
        ids = [item.id for item in results]
        work_items = {item.id: item for item in self.wit_client.get_work_items(ids)}

        issues = []
        for work_item_id in ids:
            item = work_items.get(work_item_id)
            if item is None:
                logger.warning(f"User Story {work_item_id} não retornada pelo Azure DevOps")
                continue
            issues.append(Issue(
                id=str(item.id),
                type=IssueType.STORY,
                summary=item.fields.get("System.Title", ""),
                description=item.fields.get("System.Description") or "",
                story_points=item.fields.get("Microsoft.VSTS.Scheduling.StoryPoints"),
            ))

        logger.info(f"Obtidas {len(issues)} User Stories do backlog")
        return issues

    def get_iterations(self, iteration_root: str) -> List[Iteration]:
        """
        Obtém as iterações filhas da iteração raiz

        Args:
            iteration_root: Iteração raiz, relativa ao projeto

        Returns:
            List[Iteration]: Iterações em ordem, com o caminho completo como id
        """
        node = self.wit_client.get_classification_node(
            project=self.project,
            structure_group="iterations",
            path=iteration_root or None,
            depth=1
        )
        root_path = self._root_path(iteration_root)
        iterations = [
            Iteration(id=f"{root_path}\\{child.name}", name=child.name, ordinal=ordinal)
            for ordinal, child in enumerate(node.children or [])
        ]
        logger.info(f"Obtidas {len(iterations)} iterações em {root_path}")
        return iterations

    def apply_schedule(
        self,
        result: ScheduleResult,
        known_iteration_ids: Iterable[str],
        iteration_root: str,
    ) -> Dict[str, str]:
        """
        Aplica o resultado do agendamento no Azure Boards

        Cria primeiro as iterações novas e depois move cada item para a sua iteração.
        Se uma atualização falhar, os itens já movidos são registrados no log e o erro
        é propagado.

        Args:
            result: Resultado do agendamento
            known_iteration_ids: Ids das iterações que já existiam
            iteration_root: Iteração raiz, relativa ao projeto

        Returns:
            Dict[str, str]: Mapeamento item -> caminho da iteração aplicada
        """
        known = set(known_iteration_ids)
        root_path = self._root_path(iteration_root)

        new_iterations = [iteration for iteration in result.iterations if iteration.id not in known]
        for iteration in new_iterations:
            if f"{root_path}\\{iteration.name}" in known:
                raise ValueError(
                    f"Iteração {iteration.name} já existe em {root_path}, nada foi alterado"
                )

        paths: Dict[str, str] = {iteration_id: iteration_id for iteration_id in known}
        for iteration in new_iterations:
            self.wit_client.create_or_update_classification_node(
                posted_node=WorkItemClassificationNode(name=iteration.name),
                project=self.project,
                structure_group="iterations",
                path=iteration_root or None
            )
            paths[iteration.id] = f"{root_path}\\{iteration.name}"
            logger.info(f"Iteração {iteration.name} criada no Azure DevOps")

        applied: Dict[str, str] = {}
        for assignment in result.assignments:
            iteration_path = paths[assignment.iteration_id]
            operations = [
                JsonPatchOperation(op="add", path="/fields/System.IterationPath", value=iteration_path)
            ]
            try:
                self.wit_client.update_work_item(operations, int(assignment.item_id))
            except Exception as e:
                logger.error(
                    f"Erro ao mover a User Story {assignment.item_id}: {str(e)}. "
                    f"Itens já aplicados: {applied}"
                )
                raise
            applied[assignment.item_id] = iteration_path
            logger.info(f"User Story {assignment.item_id} movida para {iteration_path}")

        return applied
