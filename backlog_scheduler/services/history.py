import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.entities import HistoryEntry


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(BaseModel):
    """Histórico append-only das alterações, indexado pelo id da entidade"""

    entries: Dict[str, List[HistoryEntry]] = Field(default_factory=dict)

    def record(
        self,
        entity_id: str,
        action: str,
        snapshot: Dict[str, Any],
        timestamp: Optional[datetime] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> HistoryEntry:
        """
        Registra uma nova entrada no histórico de uma entidade

        Args:
            entity_id: Id da entidade alterada
            action: Descrição curta da alteração
            snapshot: Estado da entidade após a alteração
            timestamp: Momento da alteração (padrão: agora)
            clock: Relógio usado quando `timestamp` não é informado

        Returns:
            HistoryEntry: Entrada registrada
        """
        entry = HistoryEntry(
            entity_id=entity_id,
            timestamp=timestamp or clock(),
            action=action,
            snapshot=copy.deepcopy(snapshot),
        )
        self.entries.setdefault(entity_id, []).append(entry)
        return entry

    def entries_for(self, entity_id: str) -> List[HistoryEntry]:
        """Retorna o histórico de uma entidade, do mais antigo ao mais recente"""
        return list(self.entries.get(entity_id, []))

    def all_entries(self) -> List[HistoryEntry]:
        """Retorna todas as entradas em ordem cronológica"""
        merged = [entry for entries in self.entries.values() for entry in entries]
        return sorted(merged, key=lambda e: e.timestamp)
