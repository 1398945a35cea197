from datetime import datetime, timedelta, timezone
from backlog_scheduler.services.history import AuditLog


def test_record_and_query():
    """Testa o registro e a consulta do histórico de uma entidade"""
    log = AuditLog()
    first = datetime(2024, 3, 18, 10, 0, tzinfo=timezone.utc)

    log.record("I1", "criada", {"sprint": None}, first)
    log.record("I1", "agendada na sprint sprint-1", {"sprint": "sprint-1"}, first + timedelta(hours=1))

    entries = log.entries_for("I1")
    assert [e.action for e in entries] == ["criada", "agendada na sprint sprint-1"]
    assert entries[1].snapshot == {"sprint": "sprint-1"}
    assert log.entries_for("I2") == []


def test_snapshot_is_copied():
    """Testa que o snapshot registrado não acompanha alterações posteriores"""
    log = AuditLog()
    snapshot = {"labels": ["a"]}

    log.record("I1", "criada", snapshot)
    snapshot["labels"].append("b")

    assert log.entries_for("I1")[0].snapshot == {"labels": ["a"]}


def test_clock_used_when_timestamp_missing():
    """Testa o uso do relógio quando o momento não é informado"""
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    log = AuditLog()

    entry = log.record("E1", "criado", {}, clock=lambda: moment)

    assert entry.timestamp == moment


def test_all_entries_in_chronological_order():
    """Testa a listagem de todas as entradas em ordem cronológica"""
    base = datetime(2024, 3, 18, tzinfo=timezone.utc)
    log = AuditLog()
    log.record("I2", "b", {}, base + timedelta(minutes=2))
    log.record("I1", "a", {}, base)
    log.record("I2", "c", {}, base + timedelta(minutes=5))

    assert [e.action for e in log.all_entries()] == ["a", "b", "c"]


def test_history_serialization():
    """Testa a serialização do histórico em JSON"""
    log = AuditLog()
    log.record("I1", "criada", {"id": "I1"}, datetime(2024, 3, 18, tzinfo=timezone.utc))

    restored = AuditLog.model_validate_json(log.model_dump_json())

    assert restored == log
