import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, patch
from backlog_scheduler.gemini.client import GeminiClient, GenerationError
from backlog_scheduler.models.config import SchedulingConfig, RetryPolicy
from backlog_scheduler.models.entities import (
    Board,
    Epic,
    EpicStatus,
    Issue,
    Iteration,
    ScheduleResult,
)
from backlog_scheduler.services.history import AuditLog
from backlog_scheduler.services.integration import (
    AutoSchedulingService,
    SchedulingUnavailableError,
)
from backlog_scheduler.services.resolver import GeminiDependencyResolver, StaticDependencyResolver

NOW = datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def board():
    """Fixture para um quadro com backlog de quatro issues"""
    return Board(
        epics=[Epic(id="E1", title="Login", issues=["I1", "I2", "I3", "I4"])],
        issues=[
            Issue(id="I1", epic_id="E1", summary="Tela de login", story_points=5),
            Issue(id="I2", epic_id="E1", summary="API de login", story_points=5),
            Issue(id="I3", epic_id="E1", summary="Recuperar senha", story_points=3),
            Issue(id="I4", epic_id="E1", summary="Auditoria", story_points=8),
        ],
    )


@pytest.fixture
def service():
    """Fixture para o serviço com dependências estáticas"""
    return AutoSchedulingService(
        SchedulingConfig(velocity=10),
        resolver=StaticDependencyResolver({"I1": ["I2"]}),
        clock=lambda: NOW,
        sleep=lambda _: None,
    )


def test_schedule_board(service, board):
    """Testa o agendamento completo do backlog"""
    updated, result = service.schedule_board(board)

    assert [(a.item_id, a.iteration_id) for a in result.assignments] == [
        ("I2", "sprint-1"),
        ("I1", "sprint-1"),
        ("I3", "sprint-2"),
        ("I4", "sprint-3"),
    ]
    assert {i.id: i.sprint for i in updated.issues} == {
        "I1": "sprint-1", "I2": "sprint-1", "I3": "sprint-2", "I4": "sprint-3",
    }
    assert [s.id for s in updated.sprints] == ["sprint-1", "sprint-2", "sprint-3"]
    assert updated.get_epic("E1").status == EpicStatus.IN_PROGRESS


def test_schedule_board_does_not_modify_input(service, board):
    """Testa que o quadro recebido não é alterado"""
    original = board.model_copy(deep=True)

    service.schedule_board(board)

    assert board == original


def test_schedule_board_records_history(service, board):
    """Testa o registro do histórico das issues e da sprint criada"""
    service.schedule_board(board)

    entries = service.audit_log.entries_for("I4")
    assert len(entries) == 1
    assert entries[0].action == "agendada na sprint sprint-3"
    assert entries[0].timestamp == NOW
    assert entries[0].snapshot["sprint"] == "sprint-3"
    assert [e.action for e in service.audit_log.entries_for("sprint-3")] == ["sprint criada"]
    assert service.audit_log.entries_for("sprint-1") == []


def test_only_backlog_is_scheduled(service, board):
    """Testa que issues já em sprint não são reagendadas"""
    board.issues[0].sprint = "sprint-2"

    updated, result = service.schedule_board(board)

    assert "I1" not in result.as_mapping()
    assert updated.get_issue("I1").sprint == "sprint-2"


def test_resolver_failure_leaves_board_untouched(board):
    """Testa que a falha persistente do resolver não altera nada"""
    resolver = Mock()
    resolver.resolve.side_effect = GenerationError("fora do ar")
    delays = []
    audit_log = AuditLog()
    service = AutoSchedulingService(
        SchedulingConfig(velocity=10),
        resolver=resolver,
        audit_log=audit_log,
        sleep=delays.append,
    )
    original = board.model_copy(deep=True)

    with pytest.raises(SchedulingUnavailableError, match="tente novamente mais tarde"):
        service.schedule_board(board)

    assert resolver.resolve.call_count == 4
    assert delays == [1.0, 2.0, 4.0]
    assert board == original
    assert audit_log.entries == {}


def test_resolver_recovers_after_retry(board):
    """Testa o agendamento quando o resolver falha uma vez e depois responde"""
    resolver = Mock()
    resolver.resolve.side_effect = [GenerationError("instável"), {"I1": ["I2"]}]
    service = AutoSchedulingService(
        SchedulingConfig(velocity=10),
        resolver=resolver,
        retry_policy=RetryPolicy(max_attempts=2),
        sleep=lambda _: None,
    )

    _, result = service.schedule_board(board)

    assert result.assignments[0].item_id == "I2"


def test_invalid_dependencies_are_sanitized(board):
    """Testa que dependências desconhecidas e auto-referências são descartadas"""
    resolver = Mock()
    resolver.resolve.return_value = {"I1": ["I1", "X9"], "I9": ["I2"], "I3": "I4"}
    service = AutoSchedulingService(SchedulingConfig(velocity=10), resolver=resolver)

    _, result = service.schedule_board(board)

    assert [a.item_id for a in result.assignments] == ["I1", "I2", "I4", "I3"]


def test_empty_backlog_skips_resolver():
    """Testa que o backlog vazio não consulta o resolver"""
    resolver = Mock()
    service = AutoSchedulingService(SchedulingConfig(velocity=10), resolver=resolver)
    board = Board()

    updated, result = service.schedule_board(board)

    resolver.resolve.assert_not_called()
    assert result.assignments == []
    assert updated == board
    assert service.audit_log.entries == {}


def test_default_resolver_has_no_dependencies(board):
    """Testa o serviço sem resolver configurado"""
    service = AutoSchedulingService(SchedulingConfig(velocity=10))

    _, result = service.schedule_board(board)

    assert [a.item_id for a in result.assignments] == ["I1", "I2", "I3", "I4"]


def test_apply_without_assignments():
    """Testa a aplicação de um resultado vazio"""
    service = AutoSchedulingService(SchedulingConfig(velocity=10))
    board = Board()

    updated = service.apply(board, ScheduleResult(iterations=[Iteration(id="x", name="X")]))

    assert updated == board
    assert updated is not board


def test_empty_model_answer_makes_scheduling_unavailable(board):
    """Testa que uma resposta sem texto do modelo é tratada como indisponibilidade"""
    response = Mock()
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": None}]}}]}
    service = AutoSchedulingService(
        SchedulingConfig(velocity=10),
        resolver=GeminiDependencyResolver(GeminiClient(api_key="chave")),
        sleep=lambda _: None,
    )

    with patch("backlog_scheduler.gemini.client.requests.post", return_value=response) as post:
        with pytest.raises(SchedulingUnavailableError):
            service.schedule_board(board)

    assert post.call_count == 4
