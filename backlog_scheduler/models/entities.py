import math
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

DEFAULT_POINTS = 3


class IssueType(str, Enum):
    """Tipos de issue aceitos no quadro"""
    STORY = "Story"
    TASK = "Task"
    SPIKE = "Spike"


class IssueStatus(str, Enum):
    """Status possíveis para uma issue"""
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class EpicStatus(str, Enum):
    """Status possíveis para um épico"""
    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    COMPLETE = "complete"


def normalize_points(value: Any) -> int:
    """
    Normaliza uma estimativa em story points

    Valores ausentes, não numéricos ou negativos viram o valor padrão (3).
    Valores fracionários são arredondados para cima.

    Args:
        value: Estimativa bruta

    Returns:
        int: Story points normalizados
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_POINTS
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_POINTS
    if not isinstance(value, (int, float)):
        return DEFAULT_POINTS
    if not math.isfinite(value) or value < 0:
        return DEFAULT_POINTS
    return int(math.ceil(value))


class WorkItem(BaseModel):
    """Item de trabalho a ser agendado"""
    id: str
    points: int = DEFAULT_POINTS

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        """Converte o identificador para string"""
        return str(v)

    @field_validator("points", mode="before")
    @classmethod
    def validate_points(cls, v: Any) -> int:
        """Normaliza os story points do item"""
        return normalize_points(v)


class Iteration(BaseModel):
    """Representa uma sprint (iteração) do quadro"""
    id: str
    name: str
    ordinal: Optional[int] = None


class Assignment(BaseModel):
    """Atribuição de um item a uma sprint"""
    item_id: str
    iteration_id: str


class ScheduleResult(BaseModel):
    """Resultado de uma execução do agendador"""
    assignments: List[Assignment] = Field(default_factory=list)
    iterations: List[Iteration] = Field(default_factory=list)

    def as_mapping(self) -> Dict[str, str]:
        """Retorna o mapeamento item -> sprint"""
        return {a.item_id: a.iteration_id for a in self.assignments}

    def items_for_iteration(self, iteration_id: str) -> List[str]:
        """Retorna os itens atribuídos a uma sprint, na ordem de agendamento"""
        return [a.item_id for a in self.assignments if a.iteration_id == iteration_id]


class Requirement(BaseModel):
    """Requisito bruto capturado no quadro"""
    id: str
    text: str


class Epic(BaseModel):
    """Modelo de um épico"""
    id: str
    title: str
    description: str = ""
    status: EpicStatus = EpicStatus.NOT_STARTED
    issues: List[str] = Field(default_factory=list)


class Issue(BaseModel):
    """Modelo de uma issue do backlog"""
    id: str
    epic_id: Optional[str] = None
    type: IssueType = IssueType.STORY
    summary: str = "New Issue"
    description: str = ""
    acceptance_criteria: str = ""
    story_points: Any = 0
    time_estimate: Any = 0
    sprint: Optional[str] = None
    status: IssueStatus = IssueStatus.TODO

    def to_work_item(self) -> WorkItem:
        """Converte a issue no item de trabalho usado pelo agendador"""
        return WorkItem(id=self.id, points=self.story_points)


def default_sprints() -> List[Iteration]:
    """Sprints iniciais de um quadro novo"""
    return [
        Iteration(id="sprint-1", name="Sprint 1", ordinal=0),
        Iteration(id="sprint-2", name="Sprint 2", ordinal=1),
    ]


class Board(BaseModel):
    """Estado completo do quadro de planejamento"""
    requirements: List[Requirement] = Field(default_factory=list)
    epics: List[Epic] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    sprints: List[Iteration] = Field(default_factory=default_sprints)

    def get_backlog(self) -> List[Issue]:
        """Retorna as issues ainda não atribuídas a uma sprint, na ordem do quadro"""
        return [issue for issue in self.issues if issue.sprint is None]

    def get_issues_for_sprint(self, sprint_id: Optional[str]) -> List[Issue]:
        """Retorna as issues de uma sprint"""
        return [issue for issue in self.issues if issue.sprint == sprint_id]

    def get_issue(self, issue_id: str) -> Issue:
        """Busca uma issue pelo id"""
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        raise KeyError(f"Issue não encontrada: {issue_id}")

    def get_epic(self, epic_id: str) -> Epic:
        """Busca um épico pelo id"""
        for epic in self.epics:
            if epic.id == epic_id:
                return epic
        raise KeyError(f"Épico não encontrado: {epic_id}")

    def calculate_epic_status(self, epic_id: str) -> EpicStatus:
        """Calcula o status de um épico a partir das suas issues"""
        epic_issues = [issue for issue in self.issues if issue.epic_id == epic_id]
        if not epic_issues:
            return EpicStatus.NOT_STARTED
        if all(issue.status == IssueStatus.DONE for issue in epic_issues):
            return EpicStatus.COMPLETE
        if any(issue.sprint is not None for issue in epic_issues):
            return EpicStatus.IN_PROGRESS
        return EpicStatus.NOT_STARTED

    def sorted_epics(self) -> List[Epic]:
        """Épicos em andamento primeiro, depois os não iniciados e por fim os concluídos"""
        order = {
            EpicStatus.IN_PROGRESS: 0,
            EpicStatus.NOT_STARTED: 1,
            EpicStatus.COMPLETE: 2,
        }
        return sorted(self.epics, key=lambda e: order[e.status])


class HistoryEntry(BaseModel):
    """Entrada imutável do histórico de uma entidade"""
    model_config = {"frozen": True}

    entity_id: str
    timestamp: datetime
    action: str
    snapshot: Dict[str, Any] = Field(default_factory=dict)
