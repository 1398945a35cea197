import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from backlog_scheduler.models.entities import (
    WorkItem,
    Issue,
    Epic,
    Board,
    EpicStatus,
    IssueStatus,
    IssueType,
    HistoryEntry,
    ScheduleResult,
    Assignment,
    Iteration,
)


@pytest.fixture
def board():
    """Fixture para um quadro com dois épicos"""
    return Board(
        epics=[
            Epic(id="E1", title="Login", issues=["I1", "I2"]),
            Epic(id="E2", title="Relatórios", issues=["I3"]),
            Epic(id="E3", title="Vazio"),
        ],
        issues=[
            Issue(id="I1", epic_id="E1", summary="Tela de login", story_points=5),
            Issue(id="I2", epic_id="E1", summary="Recuperar senha", story_points=3, sprint="sprint-1"),
            Issue(id="I3", epic_id="E2", summary="Exportar PDF", story_points=8, status=IssueStatus.DONE),
        ],
    )


@pytest.mark.parametrize("raw, expected", [
    (5, 5),
    (0, 0),
    ("8", 8),
    (2.5, 3),
    (None, 3),
    ("muito", 3),
    (-2, 3),
    (True, 3),
    (float("nan"), 3),
    ([1], 3),
])
def test_work_item_points_normalization(raw, expected):
    """Testa a normalização dos story points"""
    assert WorkItem(id="1", points=raw).points == expected


def test_work_item_default_points():
    """Testa o valor padrão quando os pontos não são informados"""
    assert WorkItem(id="1").points == 3


def test_work_item_id_as_string():
    """Testa a conversão do id para string"""
    assert WorkItem(id=42, points=1).id == "42"


def test_issue_to_work_item():
    """Testa a conversão de issue em item de trabalho"""
    issue = Issue(id="I1", story_points="13")

    assert issue.to_work_item() == WorkItem(id="I1", points=13)


def test_issue_invalid_type():
    """Testa que um tipo de issue desconhecido é rejeitado"""
    with pytest.raises(ValidationError):
        Issue(id="I1", type="Bug")


def test_new_board_has_default_sprints():
    """Testa as sprints iniciais de um quadro novo"""
    board = Board()

    assert [(s.id, s.name) for s in board.sprints] == [("sprint-1", "Sprint 1"), ("sprint-2", "Sprint 2")]


def test_board_backlog(board):
    """Testa que o backlog contém apenas issues sem sprint, na ordem do quadro"""
    assert [issue.id for issue in board.get_backlog()] == ["I1", "I3"]


def test_board_issues_for_sprint(board):
    """Testa a obtenção das issues de uma sprint"""
    assert [issue.id for issue in board.get_issues_for_sprint("sprint-1")] == ["I2"]


def test_board_lookup_unknown_ids(board):
    """Testa a busca de entidades inexistentes"""
    with pytest.raises(KeyError):
        board.get_issue("nao-existe")
    with pytest.raises(KeyError):
        board.get_epic("nao-existe")


def test_epic_status_calculation(board):
    """Testa o cálculo do status dos épicos"""
    assert board.calculate_epic_status("E1") == EpicStatus.IN_PROGRESS
    assert board.calculate_epic_status("E2") == EpicStatus.COMPLETE
    assert board.calculate_epic_status("E3") == EpicStatus.NOT_STARTED


def test_sorted_epics():
    """Testa a ordenação dos épicos por status"""
    board = Board(epics=[
        Epic(id="1", title="a", status=EpicStatus.COMPLETE),
        Epic(id="2", title="b", status=EpicStatus.NOT_STARTED),
        Epic(id="3", title="c", status=EpicStatus.IN_PROGRESS),
        Epic(id="4", title="d", status=EpicStatus.NOT_STARTED),
    ])

    assert [e.id for e in board.sorted_epics()] == ["3", "2", "4", "1"]


def test_board_json_roundtrip(board):
    """Testa a serialização do quadro"""
    restored = Board.model_validate_json(board.model_dump_json())

    assert restored == board
    assert restored.issues[2].type == IssueType.STORY


def test_schedule_result_helpers():
    """Testa os auxiliares do resultado do agendamento"""
    result = ScheduleResult(
        assignments=[
            Assignment(item_id="B", iteration_id="S1"),
            Assignment(item_id="A", iteration_id="S1"),
            Assignment(item_id="C", iteration_id="S2"),
        ],
        iterations=[Iteration(id="S1", name="Sprint 1"), Iteration(id="S2", name="Sprint 2")],
    )

    assert result.as_mapping() == {"B": "S1", "A": "S1", "C": "S2"}
    assert result.items_for_iteration("S1") == ["B", "A"]


def test_history_entry_is_immutable():
    """Testa que entradas do histórico não podem ser alteradas"""
    entry = HistoryEntry(
        entity_id="I1",
        timestamp=datetime(2024, 3, 18, tzinfo=timezone.utc),
        action="agendada",
    )

    with pytest.raises(ValidationError):
        entry.action = "outra"
