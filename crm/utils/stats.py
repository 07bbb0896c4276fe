"""
Утилиты для расчёта статистики посещаемости.

Всё считается заново из журнала занятий при каждом вызове - без кэшей и
инкрементальных обновлений.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from crm.entities import AttendanceEvent, Group
from crm.states import AttendanceMark
from crm.utils.rounding import percent

# Подпись для занятий, чью группу не удалось найти
UNASSIGNED_SUBJECT = "Без предмета"


@dataclass
class AttendanceRecord:
    """Одна отметка ученика в истории."""
    date: date
    status: AttendanceMark
    subject: str
    topic: str


@dataclass
class AttendanceCounts:
    """Счётчики отметок и процент присутствия."""
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    total: int = 0
    percent: int = 0

    def add(self, mark: AttendanceMark) -> None:
        if mark == AttendanceMark.PRESENT:
            self.present += 1
        elif mark == AttendanceMark.ABSENT:
            self.absent += 1
        elif mark == AttendanceMark.LATE:
            self.late += 1
        else:
            self.excused += 1
        self.total += 1
        self.percent = percent(self.present, self.total)


@dataclass
class AttendanceStats:
    """Статистика ученика: история, разбивка по курсам, итоги, список курсов для фильтра."""
    history: list[AttendanceRecord] = field(default_factory=list)
    by_course: dict[str, AttendanceCounts] = field(default_factory=dict)
    totals: AttendanceCounts = field(default_factory=AttendanceCounts)
    courses: list[str] = field(default_factory=list)


def event_subject(event: AttendanceEvent, groups_by_id: dict[int, Group]) -> str:
    """Предмет занятия: сохранённый в событии, иначе предмет группы."""
    if event.subject:
        return event.subject
    group = groups_by_id.get(event.group_id)
    if group is not None and group.subject:
        return group.subject
    return UNASSIGNED_SUBJECT


def compute_attendance_stats(
    events: Iterable[AttendanceEvent],
    student_id: int,
    groups: Iterable[Group],
    selected_courses: Optional[Iterable[str]] = None,
    current_subjects: Iterable[str] = (),
) -> AttendanceStats:
    """
    Статистика посещаемости по конкретному ученику.

    Args:
        events: весь журнал занятий
        student_id: ID ученика
        groups: группы (для определения предмета занятия)
        selected_courses: фильтр по предметам; пустой набор или None - без фильтра
        current_subjects: текущие предметы ученика (для списка курсов фильтра)

    Returns:
        AttendanceStats. by_course не зависит от фильтра, history и totals - зависят.
    """
    groups_by_id = {g.id: g for g in groups}
    selected = set(selected_courses or ())

    all_records = []
    for event in events:
        mark = event.marks.get(student_id)
        if mark is None:
            continue
        all_records.append(AttendanceRecord(
            date=event.date,
            status=mark,
            subject=event_subject(event, groups_by_id),
            topic=event.topic,
        ))

    by_course: dict[str, AttendanceCounts] = defaultdict(AttendanceCounts)
    for record in all_records:
        by_course[record.subject].add(record.status)

    history = [r for r in all_records if not selected or r.subject in selected]
    history.sort(key=lambda r: r.date, reverse=True)

    totals = AttendanceCounts()
    for record in history:
        totals.add(record.status)

    # Курсы для фильтра: текущие + все, что встречаются в журнале
    courses = list(dict.fromkeys(current_subjects))
    for subject in sorted(by_course):
        if subject not in courses:
            courses.append(subject)

    return AttendanceStats(
        history=history,
        by_course=dict(by_course),
        totals=totals,
        courses=courses,
    )


def attendance_streak(events: Iterable[AttendanceEvent], student_id: int) -> tuple[Optional[date], int]:
    """
    Последнее посещение и текущая серия пропусков подряд.

    Присутствие и опоздание обрывают серию, уважительная причина её не меняет.
    """
    marks = sorted(
        (event.date, event.marks[student_id])
        for event in events
        if student_id in event.marks
    )

    last_attendance = None
    streak = 0
    for day, mark in marks:
        if mark in (AttendanceMark.PRESENT, AttendanceMark.LATE):
            last_attendance = day
            streak = 0
        elif mark == AttendanceMark.ABSENT:
            streak += 1

    return last_attendance, streak


def by_course_df(stats: AttendanceStats) -> pd.DataFrame:
    """
    DataFrame с посещаемостью по курсам (лучшие сверху).

    Returns:
        DataFrame: columns=['subject', 'present', 'absent', 'late', 'excused', 'total', 'percent']
    """
    columns = ["subject", "present", "absent", "late", "excused", "total", "percent"]
    if not stats.by_course:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([
        {
            "subject": subject,
            "present": c.present,
            "absent": c.absent,
            "late": c.late,
            "excused": c.excused,
            "total": c.total,
            "percent": c.percent,
        }
        for subject, c in stats.by_course.items()
    ], columns=columns)

    return df.sort_values("percent", ascending=False, kind="stable").reset_index(drop=True)
