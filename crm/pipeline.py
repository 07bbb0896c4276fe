"""
Воронка оформления и жизненный цикл ученика.

Все переходы - чистые функции: принимают снимок ученика и дату "сегодня",
возвращают Transition с новым снимком и, для разрушительных действий,
записью для буфера отмены. Входной объект не изменяется.

Воронка: Записан -> Тестирование -> Пробный урок -> Договор -> Ожидает оплаты,
шаг вперёд с последнего этапа - активация (статус 'Активен').
"""

import copy
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union

from crm.entities import Group, Student, SubjectDetail
from crm.states import PIPELINE_ORDER, PipelineStage, StudentStatus
from crm.undo import UndoEntry

logger = logging.getLogger(__name__)

UNDO_SECONDS = 5

ACTIVATION_LABEL = "Активация"
SUBJECT_REMOVAL_LABEL = "Удаление предмета"

ACTIVATION_FIELDS = ("status", "pipeline_stage", "subject_details", "start_date")
SUBJECT_FIELDS = ("subjects", "group_ids", "subject_discounts", "subject_details")


@dataclass
class Transition:
    """Результат перехода: новый снимок ученика и, возможно, запись для отмены."""
    student: Student
    undo: Optional[UndoEntry] = None


# === События ===

@dataclass(frozen=True)
class Advance:
    pass


@dataclass(frozen=True)
class MoveToStage:
    stage: PipelineStage


@dataclass(frozen=True)
class Activate:
    pass


@dataclass(frozen=True)
class ChangeStatus:
    status: StudentStatus


@dataclass(frozen=True)
class AddSubject:
    subject: str


@dataclass(frozen=True)
class RemoveSubject:
    subject: str


@dataclass(frozen=True)
class AssignGroup:
    subject: str
    group_id: Optional[int]


Event = Union[Advance, MoveToStage, Activate, ChangeStatus, AddSubject, RemoveSubject, AssignGroup]


# === Снимки для отмены ===

def snapshot_fields(student: Student, fields: Iterable[str]) -> dict:
    """Payload для UndoEntry: ID ученика и копии полей до изменения."""
    return {
        "student_id": student.id,
        "fields": {name: copy.deepcopy(getattr(student, name)) for name in fields},
    }


def restore_fields(student: Student, payload: dict) -> Student:
    """Вернуть ученику поля из снимка (остальные поля не трогаются)."""
    restored = copy.deepcopy(student)
    for name, value in payload["fields"].items():
        setattr(restored, name, copy.deepcopy(value))
    return restored


# === Переходы ===

def next_stage(stage: PipelineStage) -> Optional[PipelineStage]:
    """Следующий этап воронки; None для последнего."""
    index = PIPELINE_ORDER.index(stage)
    if index + 1 < len(PIPELINE_ORDER):
        return PIPELINE_ORDER[index + 1]
    return None


def activate(student: Student, today: date, undo_seconds: int = UNDO_SECONDS) -> Transition:
    """
    Активация лида.

    Статус 'Активен'; дата начала и даты начала по предметам ставятся только
    если их ещё нет, так что повторная активация ничего не сдвигает. Этап
    воронки остаётся 'Ожидает оплаты'.
    """
    entry = UndoEntry(
        payload=snapshot_fields(student, ACTIVATION_FIELDS),
        expires_in_seconds=undo_seconds,
        label=ACTIVATION_LABEL,
    )

    updated = copy.deepcopy(student)
    updated.status = StudentStatus.ACTIVE
    if updated.start_date is None:
        updated.start_date = today

    for subject in updated.subjects:
        detail = updated.subject_details.setdefault(subject, SubjectDetail())
        if detail.start_date is None:
            detail.start_date = today

    return Transition(updated, entry)


def advance(student: Student, today: date, undo_seconds: int = UNDO_SECONDS) -> Transition:
    """Шаг воронки вперёд; с последнего этапа - активация."""
    stage = next_stage(student.pipeline_stage)
    if stage is None:
        return activate(student, today, undo_seconds)

    updated = copy.deepcopy(student)
    updated.pipeline_stage = stage
    return Transition(updated)


def move_to_stage(student: Student, stage: PipelineStage) -> Transition:
    """Перенос на любой этап (ручное перетаскивание). Активацию не вызывает."""
    stage = PipelineStage(stage)
    if student.pipeline_stage == stage:
        return Transition(student)

    updated = copy.deepcopy(student)
    updated.pipeline_stage = stage
    return Transition(updated)


def change_status(student: Student, status: StudentStatus, today: date) -> Transition:
    """
    Смена статуса со штампом соответствующей даты (если она ещё пустая).

    Возврат в 'Активен' снимает дату окончания и дату ухода.
    """
    status = StudentStatus(status)
    updated = copy.deepcopy(student)
    updated.status = status

    if status == StudentStatus.ACTIVE:
        if updated.start_date is None:
            updated.start_date = today
        updated.end_date = None
        updated.drop_off_date = None
    elif status == StudentStatus.ARCHIVED:
        if updated.end_date is None:
            updated.end_date = today
    elif status == StudentStatus.DROPPED:
        if updated.drop_off_date is None:
            updated.drop_off_date = today
    elif status == StudentStatus.PRESALE:
        if updated.presale_date is None:
            updated.presale_date = today

    return Transition(updated)


def add_subject(student: Student, subject: str) -> Transition:
    if subject in student.subjects:
        return Transition(student)

    updated = copy.deepcopy(student)
    updated.subjects.append(subject)
    return Transition(updated)


def _groups_of_subject(group_ids: Iterable[int], subject: str, groups: Iterable[Group]) -> set[int]:
    subject_group_ids = {g.id for g in groups if g.subject == subject}
    return {gid for gid in group_ids if gid in subject_group_ids}


def assign_group(student: Student, subject: str, group_id: Optional[int], groups: Iterable[Group]) -> Transition:
    """
    Назначить группу по предмету (None - снять с группы).

    У ученика не больше одной группы на предмет: прежняя группа этого
    предмета снимается.
    """
    groups = list(groups)
    updated = copy.deepcopy(student)
    if subject not in updated.subjects:
        updated.subjects.append(subject)

    stale = _groups_of_subject(updated.group_ids, subject, groups)
    updated.group_ids = [gid for gid in updated.group_ids if gid not in stale]
    if group_id is not None:
        updated.group_ids.append(group_id)

    return Transition(updated)


def remove_subject(
    student: Student,
    subject: str,
    today: date,
    groups: Iterable[Group] = (),
    undo_seconds: int = UNDO_SECONDS,
) -> Transition:
    """
    Убрать предмет у ученика.

    Снимает группу этого предмета, удаляет скидку по нему и ставит дату
    окончания в subject_details (сама запись сохраняется для истории).
    """
    if subject not in student.subjects:
        logger.warning("Предмет '%s' не найден у ученика %s", subject, student.id)
        return Transition(student)

    entry = UndoEntry(
        payload=snapshot_fields(student, SUBJECT_FIELDS),
        expires_in_seconds=undo_seconds,
        label=SUBJECT_REMOVAL_LABEL,
    )

    updated = copy.deepcopy(student)
    updated.subjects.remove(subject)

    linked = _groups_of_subject(updated.group_ids, subject, groups)
    updated.group_ids = [gid for gid in updated.group_ids if gid not in linked]

    updated.subject_discounts.pop(subject, None)
    updated.subject_details.setdefault(subject, SubjectDetail()).end_date = today

    return Transition(updated, entry)


def transition(student: Student, event: Event, today: date, groups: Iterable[Group] = (),
               undo_seconds: int = UNDO_SECONDS) -> Transition:
    """Применить событие к снимку ученика."""
    if isinstance(event, Advance):
        return advance(student, today, undo_seconds)
    if isinstance(event, MoveToStage):
        return move_to_stage(student, event.stage)
    if isinstance(event, Activate):
        return activate(student, today, undo_seconds)
    if isinstance(event, ChangeStatus):
        return change_status(student, event.status, today)
    if isinstance(event, AddSubject):
        return add_subject(student, event.subject)
    if isinstance(event, RemoveSubject):
        return remove_subject(student, event.subject, today, groups, undo_seconds)
    if isinstance(event, AssignGroup):
        return assign_group(student, event.subject, event.group_id, groups)
    raise TypeError(f"Неизвестное событие: {event!r}")
