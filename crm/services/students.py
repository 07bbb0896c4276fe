"""
Сервис карточки ученика: сохранение, статусы, предметы, группы, скидки.
"""

import copy
import logging
import time
from datetime import date
from typing import Callable, Optional

from crm.config import COMPANY_USER, UNDO_TIMEOUT_SECONDS
from crm.entities import Student
from crm.pipeline import (
    Transition,
    add_subject,
    assign_group,
    change_status,
    remove_subject,
    restore_fields,
)
from crm.services.base import BaseService, find_index, generate_id
from crm.states import Severity, StudentStatus
from crm.store import SnapshotStore
from crm.undo import UndoBuffer
from crm.utils.dates import local_now_iso, local_today
from crm.utils.finance import (
    FeeSummary,
    calculate_fees,
    clamp_discounts,
    set_discount_percent,
    set_subject_discount,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    "full_name": "Введите ФИО",
    "phone": "Введите телефон",
    "branch": "Выберите филиал",
}


def validate_student(student: Student) -> dict[str, str]:
    """
    Проверить обязательные поля.

    Returns:
        {поле: сообщение}; пустой словарь, если всё заполнено
    """
    errors = {}
    for name, message in REQUIRED_FIELDS.items():
        value = getattr(student, name)
        if value is None or not str(value).strip():
            errors[name] = message
    return errors


class StudentService(BaseService):
    """Операции над карточкой ученика. Удаление предмета можно отменить."""

    def __init__(
        self,
        store: SnapshotStore,
        today: Callable[[], date] = local_today,
        user_name: str = COMPANY_USER,
        undo_seconds: int = UNDO_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(store, today, user_name)
        self.undo_seconds = undo_seconds
        self.undo_buffer = UndoBuffer(self._restore, clock=clock)

    def get(self, student_id: int) -> Optional[Student]:
        return self.get_student(student_id)

    def validate(self, student: Student) -> dict[str, str]:
        return validate_student(student)

    def save(self, student: Student) -> tuple[Optional[Student], dict[str, str]]:
        """
        Сохранить карточку (создание или изменение).

        Новый ученик получает ID, дату создания и дату предзаписи. У
        существующего при смене статуса ставится соответствующая дата.
        Скидки приводятся к [0, 100], ежемесячный платёж всегда пересчитывается.

        Returns:
            (сохранённый ученик, {}) или (None, ошибки) - тогда ничего не записано
        """
        errors = validate_student(student)
        if errors:
            logger.info("Карточка ученика не сохранена: %s", ", ".join(errors))
            return None, errors

        today = self.today()
        students = self.load_students()
        index = find_index(students, student.id) if student.id else None

        if index is None:
            draft = copy.deepcopy(student)
            if not draft.id:
                draft.id = generate_id(s.id for s in students)
            draft.created_at = local_now_iso()
            draft = change_status(draft, draft.status, today).student
            if draft.presale_date is None:
                draft.presale_date = today
            action = "Создание ученика"
        else:
            previous = students[index]
            draft = copy.deepcopy(student)
            if draft.status != previous.status:
                draft = change_status(draft, draft.status, today).student
            action = "Изменение ученика"

        saved = self.stamp(clamp_discounts(draft))
        if index is None:
            students.append(saved)
        else:
            students[index] = saved
        self.save_students(students)
        logger.info("%s: %s (ID %s)", action, saved.full_name, saved.id)

        self.notify(f"Данные ученика {saved.full_name} сохранены", Severity.SUCCESS)
        self.log_action(action, saved.full_name, saved.id)
        return saved, {}

    def change_status(self, student_id: int, status: StudentStatus) -> Optional[Student]:
        status = StudentStatus(status)
        result = self.commit(
            student_id,
            lambda s: change_status(s, status, self.today()),
            "Смена статуса",
            status.value,
        )
        return result.student if result else None

    def set_subject_discount(self, student_id: int, subject: str, value) -> Optional[Student]:
        result = self.commit(
            student_id,
            lambda s: Transition(set_subject_discount(s, subject, value)),
            "Скидка по предмету",
            f"{subject}: {value}%",
        )
        return result.student if result else None

    def set_discount(self, student_id: int, value, duration: Optional[int] = None) -> Optional[Student]:
        """Общая скидка ученика (duration - срок в месяцах, None - бессрочно)."""
        result = self.commit(
            student_id,
            lambda s: Transition(set_discount_percent(s, value, duration)),
            "Скидка",
            f"{value}%",
        )
        return result.student if result else None

    def add_subject(self, student_id: int, subject: str) -> Optional[Student]:
        result = self.commit(
            student_id,
            lambda s: add_subject(s, subject),
            "Добавление предмета",
            subject,
        )
        return result.student if result else None

    def assign_group(self, student_id: int, subject: str, group_id: Optional[int]) -> Optional[Student]:
        groups = self.load_groups()
        result = self.commit(
            student_id,
            lambda s: assign_group(s, subject, group_id, groups),
            "Назначение группы",
            f"{subject}: {group_id if group_id is not None else 'без группы'}",
        )
        return result.student if result else None

    def remove_subject(
        self,
        student_id: int,
        subject: str,
        confirm: Optional[Callable[[str], bool]] = None,
    ) -> Optional[Student]:
        """
        Убрать предмет у ученика с возможностью отмены.

        confirm получает вопрос для оператора; отказ ничего не меняет и не
        создаёт запись отмены.
        """
        if confirm is not None and not confirm(f"Убрать предмет '{subject}' у ученика?"):
            logger.info("Удаление предмета '%s' у ученика %s отменено оператором", subject, student_id)
            return None

        groups = self.load_groups()
        result = self.commit(
            student_id,
            lambda s: remove_subject(s, subject, self.today(), groups, self.undo_seconds),
            "Удаление предмета",
            subject,
        )
        if result is None:
            return None

        if result.undo is not None:
            self.undo_buffer.set(result.undo)
            self.notify(f"Предмет '{subject}' убран", Severity.INFO)
        return result.student

    def undo(self) -> bool:
        return self.undo_buffer.undo()

    def _restore(self, payload: dict) -> None:
        restored = self.commit(
            payload["student_id"],
            lambda s: Transition(restore_fields(s, payload)),
            "Отмена действия",
            ", ".join(payload["fields"]),
        )
        if restored is not None:
            self.notify("Действие отменено", Severity.INFO)

    def fee_summary(self, student_id: int) -> Optional[FeeSummary]:
        student = self.get_student(student_id)
        if student is None:
            return None
        return calculate_fees(student, self.load_courses())

    def history(self, student_id: int) -> list[dict]:
        """Журнал действий по ученику (новые сверху)."""
        return self.store.audit_history(student_id)

    def close(self) -> None:
        self.undo_buffer.close()

    # Объявлен последним: имя метода перекрывает встроенный list в теле класса
    def list(self, status: Optional[StudentStatus] = None, branch: Optional[str] = None) -> list[Student]:
        """Ученики с фильтром по статусу и филиалу."""
        return [
            s for s in self.load_students()
            if (status is None or s.status == status) and (branch is None or s.branch == branch)
        ]
