"""
Сервис доски воронки: лиды по этапам, продвижение, активация с отменой.
"""

import logging
import time
from datetime import date
from typing import Callable, Optional

from crm.config import COMPANY_USER, UNDO_TIMEOUT_SECONDS
from crm.entities import Student
from crm.pipeline import Transition, activate, advance, move_to_stage, restore_fields
from crm.services.base import BaseService
from crm.states import PIPELINE_ORDER, PipelineStage, Severity, StudentStatus
from crm.store import SnapshotStore
from crm.undo import UndoBuffer
from crm.utils.dates import local_today

logger = logging.getLogger(__name__)


class PipelineService(BaseService):
    """Доска воронки. Один буфер отмены на экземпляр (на чат в боте)."""

    def __init__(
        self,
        store: SnapshotStore,
        today: Callable[[], date] = local_today,
        undo_seconds: int = UNDO_TIMEOUT_SECONDS,
        user_name: str = COMPANY_USER,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(store, today, user_name)
        self.undo_seconds = undo_seconds
        self.undo_buffer = UndoBuffer(self._restore, clock=clock)

    def leads(self, branch: Optional[str] = None) -> dict[PipelineStage, list[Student]]:
        """Лиды (статус 'Предзапись') по этапам воронки, все этапы в порядке воронки."""
        board = {stage: [] for stage in PIPELINE_ORDER}
        for student in self.load_students():
            if student.status != StudentStatus.PRESALE:
                continue
            if branch is not None and student.branch != branch:
                continue
            board[student.pipeline_stage].append(student)
        return board

    def advance(self, student_id: int) -> Optional[Student]:
        """Шаг вперёд по воронке; с этапа 'Ожидает оплаты' - активация."""
        result = self.commit(
            student_id,
            lambda s: advance(s, self.today(), self.undo_seconds),
            "Воронка",
            "Следующий этап",
        )
        return self._finish(result)

    def move_to_stage(self, student_id: int, stage: PipelineStage) -> Optional[Student]:
        stage = PipelineStage(stage)
        result = self.commit(
            student_id,
            lambda s: move_to_stage(s, stage),
            "Воронка",
            f"Перенос на этап '{stage.value}'",
        )
        return result.student if result else None

    def activate(self, student_id: int) -> Optional[Student]:
        result = self.commit(
            student_id,
            lambda s: activate(s, self.today(), self.undo_seconds),
            "Активация",
            "Лид переведён в активные ученики",
        )
        return self._finish(result)

    def _finish(self, result: Optional[Transition]) -> Optional[Student]:
        if result is None:
            return None
        if result.undo is not None:
            self.undo_buffer.set(result.undo)
            self.notify(f"Ученик {result.student.full_name} активирован", Severity.SUCCESS)
        return result.student

    def undo(self) -> bool:
        return self.undo_buffer.undo()

    def _restore(self, payload: dict) -> None:
        restored = self.commit(
            payload["student_id"],
            lambda s: Transition(restore_fields(s, payload)),
            "Отмена действия",
            "Активация отменена",
        )
        if restored is not None:
            self.notify("Активация отменена", Severity.INFO)

    def close(self) -> None:
        self.undo_buffer.close()
