"""
Сервис журнала: посещаемость занятий и результаты экзаменов.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from crm.entities import AttendanceEvent, ExamResult, Student
from crm.services.base import BaseService, generate_id
from crm.states import AttendanceMark, Severity
from crm.store import StorageKeys, load_entities, save_entities
from crm.utils.dates import format_date, month_key
from crm.utils.exams import (
    Heatmap,
    SequenceRow,
    exam_heatmap,
    exam_sequence_summary,
    subject_performance,
)
from crm.utils.stats import AttendanceStats, attendance_streak, compute_attendance_stats

logger = logging.getLogger(__name__)


class JournalService(BaseService):
    """Запись занятий и экзаменов, статистика по ученику."""

    def load_attendance(self) -> list[AttendanceEvent]:
        return load_entities(self.store, StorageKeys.ATTENDANCE, AttendanceEvent)

    def load_exam_results(self) -> list[ExamResult]:
        return load_entities(self.store, StorageKeys.EXAM_RESULTS, ExamResult)

    # === Посещаемость ===

    def record_attendance(
        self,
        group_id: int,
        day: date,
        marks: dict,
        topic: str = "",
    ) -> tuple[Optional[AttendanceEvent], dict[str, str]]:
        """
        Записать занятие группы (повторная запись на ту же дату заменяет прежнюю).

        Args:
            marks: {student_id: отметка} - AttendanceMark или её значение ('П', 'Н', 'О', 'У')

        Returns:
            (занятие, {}) или (None, ошибки по полям)
        """
        errors = {}
        groups = {g.id: g for g in self.load_groups()}
        group = groups.get(group_id)
        if group is None:
            errors["group_id"] = "Группа не найдена"

        parsed = {}
        for student_id, mark in marks.items():
            try:
                parsed[int(student_id)] = AttendanceMark(mark)
            except ValueError:
                errors[f"marks.{student_id}"] = f"Неизвестная отметка: {mark}"

        if errors:
            return None, errors

        event = AttendanceEvent(group_id=group_id, date=day, topic=topic, marks=parsed, subject=group.subject)
        events = [e for e in self.load_attendance() if e.key != event.key]
        events.append(event)
        events.sort(key=lambda e: (e.date, e.group_id))
        save_entities(self.store, StorageKeys.ATTENDANCE, events)
        logger.info("Занятие группы %s за %s: %s отметок", group_id, day, len(parsed))

        self._update_streaks(events, parsed)
        self.log_action("Посещаемость", f"{group.name or group.subject}, {format_date(day)}", group_id)
        return event, {}

    def _update_streaks(self, events: list[AttendanceEvent], student_ids: Iterable[int]) -> None:
        """Пересчитать последнее посещение и серию пропусков отмеченных учеников."""
        student_ids = set(student_ids)
        students = self.load_students()
        changed = False

        for index, student in enumerate(students):
            if student.id not in student_ids:
                continue
            last_attendance, absences = attendance_streak(events, student.id)
            if (student.last_attendance, student.consecutive_absences) == (last_attendance, absences):
                continue
            student.last_attendance = last_attendance
            student.consecutive_absences = absences
            changed = True
            if absences >= 3:
                self.notify(f"{student.full_name}: {absences} пропуска подряд", Severity.WARNING)

        if changed:
            self.save_students(students)

    def student_attendance(self, student_id: int, selected_courses: Optional[Iterable[str]] = None) -> Optional[AttendanceStats]:
        student = self.get_student(student_id)
        if student is None:
            return None
        return compute_attendance_stats(
            self.load_attendance(),
            student_id,
            self.load_groups(),
            selected_courses=selected_courses,
            current_subjects=student.subjects,
        )

    # === Экзамены ===

    def record_exam_results(
        self,
        subject: str,
        day: date,
        max_score: float,
        scores: dict[int, float],
        group_id: Optional[int] = None,
    ) -> list[ExamResult]:
        """
        Записать результаты экзамена.

        Экзамен по предмету, которого у ученика сейчас нет, помечается как
        'вне программы'. Неизвестные ученики пропускаются.
        """
        students = {s.id: s for s in self.load_students()}
        results = self.load_exam_results()
        used_ids = {r.id for r in results}

        recorded = []
        for student_id, score in scores.items():
            student: Optional[Student] = students.get(student_id)
            if student is None:
                logger.warning("Результат экзамена пропущен: ученик %s не найден", student_id)
                continue

            result_id = generate_id(used_ids)
            used_ids.add(result_id)
            recorded.append(ExamResult(
                id=result_id,
                student_id=student_id,
                student_name=student.full_name,
                subject=subject,
                date=day,
                score=score,
                max_score=max_score,
                is_extra=subject not in student.subjects,
            ))

        if not recorded:
            return []

        save_entities(self.store, StorageKeys.EXAM_RESULTS, results + recorded)
        logger.info("Экзамен '%s' за %s: %s результатов", subject, day, len(recorded))
        self.log_action("Экзамен", f"{subject}, {format_date(day)}: {len(recorded)} результатов", group_id)
        return recorded

    def student_exams(self, student_id: int) -> list[ExamResult]:
        """Экзамены ученика по хронологии."""
        results = [r for r in self.load_exam_results() if r.student_id == student_id]
        results.sort(key=lambda r: (r.date, r.id))
        return results

    def student_heatmap(self, student_id: int) -> Optional[Heatmap]:
        student = self.get_student(student_id)
        if student is None:
            return None
        return exam_heatmap(self.student_exams(student_id), student.subjects)

    def student_sequence_summary(self, student_id: int, subject: Optional[str] = None) -> list[SequenceRow]:
        return exam_sequence_summary(self.student_exams(student_id), subject)

    def exam_overview(self, month: Optional[str] = None) -> list[dict]:
        """Средний процент по предметам за месяц YYYY-MM (по умолчанию текущий)."""
        return subject_performance(self.load_exam_results(), month or month_key(self.today()))
