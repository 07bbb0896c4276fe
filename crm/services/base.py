"""
Общая часть сервисов: доступ к коллекциям, сохранение ученика, побочные каналы.

Сервис читает снимок коллекции целиком, применяет чистую функцию и
записывает коллекцию обратно. Уведомления и журнал действий - побочные
каналы: их сбой логируется и не откатывает уже записанные данные.
"""

import logging
import time
from datetime import date
from typing import Callable, Iterable, Optional

from crm.config import COMPANY_USER
from crm.entities import Course, Group, Student
from crm.pipeline import Transition
from crm.states import Severity
from crm.store import SnapshotStore, StorageKeys, load_entities, save_entities
from crm.utils.dates import local_now_iso, local_today
from crm.utils.finance import sync_monthly_fee

logger = logging.getLogger(__name__)


def generate_id(existing: Iterable[int]) -> int:
    """Новый ID на основе времени в миллисекундах (со сдвигом при совпадении)."""
    existing = set(existing)
    candidate = int(time.time() * 1000)
    while candidate in existing:
        candidate += 1
    return candidate


def find_index(students: list[Student], student_id: int) -> Optional[int]:
    for index, student in enumerate(students):
        if student.id == student_id:
            return index
    return None


class BaseService:
    """Базовый сервис поверх SnapshotStore."""

    def __init__(
        self,
        store: SnapshotStore,
        today: Callable[[], date] = local_today,
        user_name: str = COMPANY_USER,
    ):
        self.store = store
        self._today = today
        self.user_name = user_name

    def today(self) -> date:
        return self._today()

    # === Коллекции ===

    def load_students(self) -> list[Student]:
        return load_entities(self.store, StorageKeys.STUDENTS, Student)

    def save_students(self, students: list[Student]) -> None:
        save_entities(self.store, StorageKeys.STUDENTS, students)

    def load_courses(self) -> list[Course]:
        return load_entities(self.store, StorageKeys.COURSES, Course)

    def load_groups(self) -> list[Group]:
        return load_entities(self.store, StorageKeys.GROUPS, Group)

    def get_student(self, student_id: int) -> Optional[Student]:
        """Ученик по ID; None (с предупреждением в логе), если такого нет."""
        students = self.load_students()
        index = find_index(students, student_id)
        if index is None:
            logger.warning("Ученик %s не найден", student_id)
            return None
        return students[index]

    # === Изменение ученика ===

    def stamp(self, student: Student) -> Student:
        """Пересчитать платёж и отметить автора изменения (student - уже копия)."""
        student, _ = sync_monthly_fee(student, self.load_courses())
        student.last_modified_by = self.user_name
        student.last_modified_at = local_now_iso()
        return student

    def commit(
        self,
        student_id: int,
        change: Callable[[Student], Transition],
        action: str,
        details: str,
    ) -> Optional[Transition]:
        """
        Применить переход к ученику и сохранить коллекцию.

        Returns:
            Transition с сохранённым снимком; None, если ученика нет.
            Если переход ничего не изменил, коллекция не перезаписывается.
        """
        students = self.load_students()
        index = find_index(students, student_id)
        if index is None:
            logger.warning("Ученик %s не найден", student_id)
            return None

        result = change(students[index])
        if result.student is students[index]:
            return result

        updated = self.stamp(result.student)
        students[index] = updated
        self.save_students(students)
        logger.info("%s: ученик %s (%s)", action, student_id, details)

        self.log_action(action, details, student_id)
        return Transition(updated, result.undo)

    # === Побочные каналы ===

    def notify(self, message: str, severity: Severity = Severity.INFO, title: Optional[str] = None) -> None:
        try:
            self.store.notify(message, severity, title)
        except Exception:
            logger.exception("Не удалось отправить уведомление: %s", message)

    def log_action(self, action: str, details: str, entity_id: Optional[int] = None) -> None:
        try:
            self.store.log_action(action, details, entity_id)
        except Exception:
            logger.exception("Не удалось записать действие '%s' в журнал", action)
