import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from ..models.entities import Board
from .history import AuditLog


class JsonBoardStore:
    """Persistência do quadro e do histórico em arquivos JSON"""

    def __init__(self, board_path: Union[str, Path], history_path: Optional[Union[str, Path]] = None):
        """
        Inicializa o armazenamento

        Args:
            board_path: Arquivo JSON do quadro
            history_path: Arquivo JSON do histórico (padrão: history.json ao lado do quadro)
        """
        self.board_path = Path(board_path)
        self.history_path = Path(history_path) if history_path else self.board_path.with_name("history.json")

    def load(self) -> Board:
        """Carrega o quadro; um arquivo inexistente resulta em um quadro novo"""
        if not self.board_path.exists():
            logger.info(f"Quadro {self.board_path} não encontrado, iniciando quadro novo")
            return Board()
        board = Board.model_validate_json(self.board_path.read_text(encoding="utf-8"))
        logger.info(
            f"Quadro carregado de {self.board_path}: {len(board.issues)} issues, {len(board.sprints)} sprints"
        )
        return board

    def save(self, board: Board) -> None:
        """Grava o quadro de forma atômica"""
        self._write_atomic(self.board_path, board.model_dump(mode="json"))
        logger.info(f"Quadro salvo em {self.board_path}")

    def load_history(self) -> AuditLog:
        if not self.history_path.exists():
            return AuditLog()
        return AuditLog.model_validate_json(self.history_path.read_text(encoding="utf-8"))

    def save_history(self, audit_log: AuditLog) -> None:
        self._write_atomic(self.history_path, audit_log.model_dump(mode="json"))
        logger.info(f"Histórico salvo em {self.history_path}")

    @staticmethod
    def _write_atomic(path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                json.dump(data, tmp_file, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
