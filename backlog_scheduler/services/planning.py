import time
import uuid
from typing import Any, Callable, Optional

from loguru import logger

from ..gemini.client import GeminiClient, GenerationError
from ..models.config import RetryPolicy
from ..models.entities import Board, Epic, Issue, IssueType, Requirement
from .retry import call_with_retry

EPIC_PROMPT = (
    "As a PI planner, translate the following raw requirement into a concise, well-defined "
    "Epic title and description. Provide only the JSON output with 'title' and 'description' keys."
)

REFINE_PROMPT = (
    "As a PI planner, review and expand on the following epic. Add more detail, break down "
    "complex ideas, and suggest potential sub-themes. Provide only the refined description as "
    "a JSON object with a single 'refinedDescription' key."
)

ISSUES_PROMPT = (
    "Based on the provided Epic, generate a list of Jira issues including Stories, Tasks, and "
    "Spikes. For each issue, provide a 'summary', a 'description', and 'acceptanceCriteria' in "
    "Gherkin format (Given, When, Then). Also, provide a reasonable 'storyPoints' estimate "
    "(1-13) and a 'timeEstimate' in hours. Provide the output as a JSON array of objects, with "
    "keys 'type', 'summary', 'description', 'acceptanceCriteria', 'storyPoints', "
    "'timeEstimate'. The 'type' must be 'Story', 'Task', or 'Spike'."
)

EDITABLE_ISSUE_FIELDS = {
    "type",
    "summary",
    "description",
    "acceptance_criteria",
    "story_points",
    "time_estimate",
    "status",
}


def new_id() -> str:
    return str(uuid.uuid4())


class PlanningService:
    """Operações de edição do quadro de planejamento"""

    def __init__(
        self,
        generator: Optional[GeminiClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        id_factory: Callable[[], str] = new_id,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Inicializa o serviço de planejamento

        Args:
            generator: Cliente do serviço de geração de texto
            retry_policy: Política de novas tentativas das chamadas ao gerador
            id_factory: Gerador de ids das novas entidades
            sleep: Função de espera entre tentativas
        """
        self.generator = generator
        self.retry_policy = retry_policy or RetryPolicy()
        self.id_factory = id_factory
        self.sleep = sleep

    def _generate(self, system_prompt: str, user_query: str, description: str) -> Any:
        if self.generator is None:
            raise GenerationError("Serviço de geração de texto não configurado")
        return call_with_retry(
            lambda: self.generator.generate_json(system_prompt, user_query),
            self.retry_policy,
            description,
            sleep=self.sleep,
        )

    def add_requirement(self, board: Board, text: str) -> Board:
        """Adiciona um requisito bruto ao quadro"""
        updated = board.model_copy(deep=True)
        if not text or not text.strip():
            return updated
        updated.requirements.append(Requirement(id=self.id_factory(), text=text))
        logger.info(f"Requisito adicionado: {text}")
        return updated

    def translate_to_epic(self, board: Board, requirement_id: str) -> Board:
        """Transforma um requisito em épico usando o gerador de texto"""
        requirement = next((r for r in board.requirements if r.id == requirement_id), None)
        if requirement is None:
            raise KeyError(f"Requisito não encontrado: {requirement_id}")

        data = self._generate(EPIC_PROMPT, f"Requirement: {requirement.text}", "Geração de épico")
        if not isinstance(data, dict) or not data.get("title"):
            raise GenerationError("Resposta do modelo sem título de épico")

        updated = board.model_copy(deep=True)
        epic = Epic(
            id=self.id_factory(),
            title=str(data["title"]),
            description=str(data.get("description") or ""),
        )
        updated.epics.append(epic)
        updated.requirements = [r for r in updated.requirements if r.text != requirement.text]
        logger.info(f"Épico {epic.id} criado a partir do requisito {requirement_id}")
        return updated

    def refine_epic(self, board: Board, epic_id: str) -> Board:
        """Detalha a descrição de um épico usando o gerador de texto"""
        epic = board.get_epic(epic_id)
        query = f"Epic Title: {epic.title}\nEpic Description: {epic.description}"
        data = self._generate(REFINE_PROMPT, query, "Refinamento de épico")
        if not isinstance(data, dict) or "refinedDescription" not in data:
            raise GenerationError("Resposta do modelo sem descrição refinada")

        updated = board.model_copy(deep=True)
        updated.get_epic(epic_id).description = str(data["refinedDescription"])
        logger.info(f"Épico {epic_id} refinado")
        return updated

    def generate_issues(self, board: Board, epic_id: str) -> Board:
        """Gera as issues de um épico usando o gerador de texto"""
        epic = board.get_epic(epic_id)
        query = f"Epic Title: {epic.title}\nEpic Description: {epic.description}"
        data = self._generate(ISSUES_PROMPT, query, "Geração de issues")
        if not isinstance(data, list):
            raise GenerationError("Resposta do modelo não é uma lista de issues")

        updated = board.model_copy(deep=True)
        target = updated.get_epic(epic_id)
        for raw in data:
            if not isinstance(raw, dict):
                logger.warning(f"Issue gerada ignorada, formato inválido: {raw}")
                continue
            issue = Issue(
                id=self.id_factory(),
                epic_id=epic_id,
                type=self._issue_type(raw.get("type")),
                summary=str(raw.get("summary") or "New Issue"),
                description=str(raw.get("description") or ""),
                acceptance_criteria=str(raw.get("acceptanceCriteria") or ""),
                story_points=raw.get("storyPoints", 0),
                time_estimate=raw.get("timeEstimate", 0),
            )
            updated.issues.append(issue)
            target.issues.append(issue.id)

        logger.info(f"{len(target.issues) - len(epic.issues)} issues geradas para o épico {epic_id}")
        return _update_epic_statuses(updated)

    @staticmethod
    def _issue_type(value: Any) -> IssueType:
        try:
            return IssueType(value)
        except ValueError:
            return IssueType.STORY

    def add_issue(self, board: Board, epic_id: str) -> Board:
        """Adiciona uma issue em branco a um épico"""
        board.get_epic(epic_id)
        updated = board.model_copy(deep=True)
        issue = Issue(id=self.id_factory(), epic_id=epic_id)
        updated.issues.append(issue)
        updated.get_epic(epic_id).issues.append(issue.id)
        return _update_epic_statuses(updated)

    def update_issue(self, board: Board, issue_id: str, field: str, value: Any) -> Board:
        """Altera um campo editável de uma issue"""
        if field not in EDITABLE_ISSUE_FIELDS:
            raise ValueError(f"Campo não editável: {field}")
        board.get_issue(issue_id)

        updated = board.model_copy(deep=True)
        issue = updated.get_issue(issue_id)
        data = issue.model_dump()
        data[field] = value
        replacement = Issue(**data)
        updated.issues = [replacement if i.id == issue_id else i for i in updated.issues]
        return _update_epic_statuses(updated)

    def delete_issue(self, board: Board, issue_id: str) -> Board:
        """Remove uma issue do quadro e do seu épico"""
        issue = board.get_issue(issue_id)
        updated = board.model_copy(deep=True)
        updated.issues = [i for i in updated.issues if i.id != issue_id]
        for epic in updated.epics:
            if epic.id == issue.epic_id:
                epic.issues = [i for i in epic.issues if i != issue_id]
        return _update_epic_statuses(updated)

    def move_issue(self, board: Board, issue_id: str, sprint_id: Optional[str]) -> Board:
        """Move uma issue para uma sprint, ou de volta ao backlog com `None`"""
        board.get_issue(issue_id)
        if sprint_id is not None and sprint_id not in {s.id for s in board.sprints}:
            raise KeyError(f"Sprint não encontrada: {sprint_id}")
        updated = board.model_copy(deep=True)
        updated.get_issue(issue_id).sprint = sprint_id
        return _update_epic_statuses(updated)

    def refresh_epic_statuses(self, board: Board) -> Board:
        """Recalcula o status de todos os épicos a partir das suas issues"""
        return _update_epic_statuses(board.model_copy(deep=True))


def _update_epic_statuses(board: Board) -> Board:
    for epic in board.epics:
        epic.status = board.calculate_epic_status(epic.id)
    return board
