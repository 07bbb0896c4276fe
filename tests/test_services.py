"""
Тесты сервисов поверх хранилища в памяти.
"""

import pytest
from datetime import date
from unittest.mock import MagicMock

from crm.entities import INVOICE_PAID, ExamResult, Student
from crm.services import FinanceService, JournalService, PipelineService, StudentService
from crm.states import AttendanceMark, PipelineStage, StudentStatus
from crm.store import MemoryStore, StorageKeys, load_entities

from conftest import TODAY


def fixed_today():
    return TODAY


def stored_student(store, student_id) -> Student:
    return next(s for s in load_entities(store, StorageKeys.STUDENTS, Student) if s.id == student_id)


class TestStudentService:
    """Тесты сервиса карточки ученика."""

    @pytest.fixture
    def service(self, store, clock):
        return StudentService(store, today=fixed_today, user_name="Тест", clock=clock)

    def test_create(self, service, store):
        """Новый ученик: ID, дата создания, дата предзаписи, платёж."""
        draft = Student(full_name="Сидоров Олег", phone="+992900000003", branch="Центр", subjects=["Математика"])
        saved, errors = service.save(draft)

        assert errors == {}
        assert saved.id > 0
        assert saved.created_at is not None
        assert saved.presale_date == TODAY
        assert saved.monthly_fee == 1200
        assert saved.last_modified_by == "Тест"
        assert stored_student(store, saved.id).full_name == "Сидоров Олег"
        assert store.notifications[0]["severity"] == "success"
        assert store.audit_logs[0]["action"] == "Создание ученика"

    def test_validation(self, service, store):
        """Незаполненные обязательные поля - ошибки по полям, хранилище не меняется."""
        before = store.get(StorageKeys.STUDENTS, [])
        saved, errors = service.save(Student(full_name="  ", phone=""))

        assert saved is None
        assert set(errors) == {"full_name", "phone", "branch"}
        assert store.get(StorageKeys.STUDENTS, []) == before
        assert store.audit_logs == []

    def test_status_change_on_save_stamps_date(self, service, active_student):
        active_student.status = StudentStatus.ARCHIVED
        saved, _ = service.save(active_student)

        assert saved.end_date == TODAY

    def test_save_resyncs_fee(self, service, active_student):
        active_student.monthly_fee = 1
        saved, _ = service.save(active_student)
        assert saved.monthly_fee == 2055

    def test_save_clamps_discounts(self, service, store):
        """Скидки из карточки приводятся к [0, 100], платёж не уходит в минус."""
        draft = Student(
            full_name="Сидоров Олег",
            phone="+992900000003",
            branch="Центр",
            subjects=["Математика", "Физика"],
            subject_discounts={"Математика": 150},
            discount_percent=-20,
        )
        saved, errors = service.save(draft)

        assert errors == {}
        assert saved.subject_discounts == {"Математика": 100}
        assert saved.discount_percent == 0
        assert saved.monthly_fee == 850
        stored = stored_student(store, saved.id)
        assert stored.subject_discounts["Математика"] == 100
        assert stored.monthly_fee >= 0

    def test_get_missing(self, service):
        assert service.get(404) is None

    def test_list(self, service):
        assert [s.id for s in service.list(status=StudentStatus.ACTIVE)] == [1]
        assert [s.id for s in service.list(branch="Центр")] == [1, 2]
        assert service.list(branch="Сино") == []

    def test_change_status(self, service, store):
        student = service.change_status(2, StudentStatus.DROPPED)

        assert student.drop_off_date == TODAY
        assert stored_student(store, 2).status == StudentStatus.DROPPED

    def test_discount_clamped_and_fee_resynced(self, service, store):
        student = service.set_subject_discount(1, "Математика", 150)

        assert student.subject_discounts["Математика"] == 100
        assert student.monthly_fee == 855
        assert stored_student(store, 1).monthly_fee == 855

    def test_blanket_discount(self, service):
        student = service.set_discount(1, 20, duration=2)
        # Английский со своей скидкой 10%, математика - с общей 20%
        assert student.monthly_fee == 960 + 855
        assert student.discount_duration == 2

    def test_add_subject(self, service):
        student = service.add_subject(1, "Физика")
        assert student.subjects == ["Математика", "Английский", "Физика"]
        assert student.monthly_fee == 2055 + 850

    def test_assign_group(self, service, store):
        service.assign_group(1, "Математика", 11)
        assert sorted(stored_student(store, 1).group_ids) == [11, 20]

    def test_fee_summary(self, service):
        assert service.fee_summary(1).total_monthly_fee == 2055
        assert service.fee_summary(404) is None

    def test_remove_subject_declined(self, service, store):
        """Отказ в подтверждении: ничего не меняется, отменять нечего."""
        confirm = MagicMock(return_value=False)
        before = store.get(StorageKeys.STUDENTS, [])

        assert service.remove_subject(1, "Английский", confirm=confirm) is None
        confirm.assert_called_once()
        assert store.get(StorageKeys.STUDENTS, []) == before
        assert service.undo_buffer.pending is None

    def test_remove_subject_and_undo(self, service, store, clock):
        student = service.remove_subject(1, "Английский", confirm=lambda question: True)

        assert student.subjects == ["Математика"]
        assert student.group_ids == [10]
        assert student.monthly_fee == 1200

        clock.advance(3)
        assert service.undo() is True

        restored = stored_student(store, 1)
        assert restored.subjects == ["Математика", "Английский"]
        assert restored.group_ids == [10, 20]
        assert restored.subject_discounts == {"Английский": 10}
        assert restored.subject_details["Английский"].end_date is None
        assert restored.monthly_fee == 2055

    def test_undo_after_expiry(self, service, store, clock):
        service.remove_subject(1, "Английский")
        clock.advance(5)

        assert service.undo() is False
        assert stored_student(store, 1).subjects == ["Математика"]

    def test_side_channel_failure_does_not_roll_back(self, service, store):
        """Сбой уведомлений и журнала не откатывает сохранение."""
        store.notify = MagicMock(side_effect=RuntimeError("notifications down"))
        store.log_action = MagicMock(side_effect=RuntimeError("audit down"))

        student = service.change_status(2, StudentStatus.ARCHIVED)
        saved, errors = service.save(Student(full_name="Новый", phone="1", branch="Центр"))

        assert student.status == StudentStatus.ARCHIVED
        assert stored_student(store, 2).status == StudentStatus.ARCHIVED
        assert errors == {}
        assert stored_student(store, saved.id).full_name == "Новый"

    def test_history(self, service):
        service.change_status(2, StudentStatus.PAUSED)
        service.add_subject(2, "Химия")

        history = service.history(2)
        assert [h["action"] for h in history] == ["Добавление предмета", "Смена статуса"]
        assert history[0]["userName"] == "Тест"


class TestPipelineService:
    """Тесты сервиса воронки."""

    @pytest.fixture
    def service(self, store, clock):
        return PipelineService(store, today=fixed_today, undo_seconds=5, clock=clock)

    def test_leads_board(self, service):
        board = service.leads()

        assert list(board) == list(PipelineStage)
        assert [s.id for s in board[PipelineStage.NEW]] == [2]
        assert all(not board[stage] for stage in list(PipelineStage)[1:])

    def test_leads_by_branch(self, service):
        assert all(not students for students in service.leads(branch="Сино").values())

    def test_advance_to_activation_and_undo(self, service, store):
        for _ in range(4):
            student = service.advance(2)
            assert student.status == StudentStatus.PRESALE
        assert student.pipeline_stage == PipelineStage.PAYMENT
        assert service.undo_buffer.pending is None

        student = service.advance(2)
        assert student.status == StudentStatus.ACTIVE
        assert student.start_date == TODAY
        assert service.undo_buffer.pending.label == "Активация"
        assert service.leads()[PipelineStage.PAYMENT] == []

        assert service.undo() is True
        restored = stored_student(store, 2)
        assert restored.status == StudentStatus.PRESALE
        assert restored.pipeline_stage == PipelineStage.PAYMENT
        assert restored.start_date is None
        assert restored.subject_details == {}

    def test_activation_undo_expires(self, service, store, clock):
        service.activate(2)
        clock.advance(6)

        assert service.undo() is False
        assert stored_student(store, 2).status == StudentStatus.ACTIVE

    def test_move_to_stage(self, service, store):
        service.move_to_stage(2, PipelineStage.CONTRACT)
        assert stored_student(store, 2).pipeline_stage == PipelineStage.CONTRACT
        assert service.undo_buffer.pending is None

    def test_missing_student(self, service):
        assert service.advance(404) is None

    def test_close_drops_pending_undo(self, service):
        service.activate(2)
        service.close()
        assert service.undo() is False


class TestJournalService:
    """Тесты журнала посещаемости и экзаменов."""

    @pytest.fixture
    def service(self, store):
        return JournalService(store, today=fixed_today)

    def test_record_attendance(self, service, store):
        event, errors = service.record_attendance(10, date(2024, 3, 14), {1: "П", 2: AttendanceMark.ABSENT}, "Дроби")

        assert errors == {}
        assert event.subject == "Математика"
        assert event.marks == {1: AttendanceMark.PRESENT, 2: AttendanceMark.ABSENT}
        assert stored_student(store, 1).last_attendance == date(2024, 3, 14)
        assert stored_student(store, 2).consecutive_absences == 1

    def test_same_day_replaces_event(self, service):
        service.record_attendance(10, date(2024, 3, 14), {1: "Н"})
        service.record_attendance(10, date(2024, 3, 14), {1: "П"})

        events = service.load_attendance()
        assert len(events) == 1
        assert events[0].marks == {1: AttendanceMark.PRESENT}

    def test_invalid_marks(self, service, store):
        event, errors = service.record_attendance(99, date(2024, 3, 14), {1: "X"})

        assert event is None
        assert set(errors) == {"group_id", "marks.1"}
        assert store.get(StorageKeys.ATTENDANCE, []) == []

    def test_student_attendance(self, service):
        service.record_attendance(10, date(2024, 3, 13), {1: "П"})
        service.record_attendance(20, date(2024, 3, 14), {1: "Н"})

        stats = service.student_attendance(1)
        assert stats.totals.percent == 50
        assert stats.courses == ["Математика", "Английский"]

        filtered = service.student_attendance(1, ["Английский"])
        assert filtered.totals.percent == 0

    def test_exam_outside_program(self, service):
        """Экзамен по предмету, которого нет у ученика, - вне программы."""
        recorded = service.record_exam_results("Физика", date(2024, 3, 14), 20, {1: 15, 2: 18, 404: 10})

        by_student = {r.student_id: r for r in recorded}
        assert set(by_student) == {1, 2}
        assert by_student[1].is_extra is True
        assert by_student[2].is_extra is False
        assert by_student[2].student_name == "Петрова Анна"
        assert len(service.student_exams(1)) == 1

    def test_student_heatmap(self, service):
        service.record_exam_results("Математика", date(2024, 3, 1), 50, {1: 40})
        heatmap = service.student_heatmap(1)

        assert [row.subject for row in heatmap.rows] == ["Математика", "Английский"]
        assert heatmap.rows[0].cells[0].percent == 80
        assert heatmap.rows[1].cells == [None]

    def test_exam_overview(self, service, store, exam_results):
        """Обзор по предметам: по умолчанию текущий месяц."""
        store.set(StorageKeys.EXAM_RESULTS, [r.to_dict() for r in exam_results])
        service.record_exam_results("Математика", date(2024, 3, 1), 50, {1: 40, 2: 30})

        assert service.exam_overview() == [{"subject": "Математика", "avg_percent": 70, "count": 2}]
        assert [p["subject"] for p in service.exam_overview("2024-02")] == ["Математика", "Английский", "Химия"]


class TestFinanceService:
    """Тесты оплат и счетов."""

    @pytest.fixture
    def store(self, courses, groups, active_student, lead):
        active_student.monthly_fee = 2055
        return MemoryStore({
            StorageKeys.COURSES: [c.to_dict() for c in courses],
            StorageKeys.GROUPS: [g.to_dict() for g in groups],
            StorageKeys.STUDENTS: [active_student.to_dict(), lead.to_dict()],
        })

    @pytest.fixture
    def service(self, store):
        return FinanceService(store, today=fixed_today, user_name="Кассир")

    def test_record_payment(self, service, store):
        transaction = service.record_payment(1, 1500)

        assert transaction.amount == 1500
        assert transaction.purpose == "Оплата за обучение (Математика: 1200, Английский: 300)"
        assert transaction.created_by == "Кассир"
        assert transaction.date == TODAY
        assert stored_student(store, 1).balance == 1500
        assert len(service.load_transactions()) == 1

    def test_payment_must_be_positive(self, service):
        with pytest.raises(ValueError):
            service.record_payment(1, 0)

    def test_payment_for_missing_student(self, service):
        assert service.record_payment(404, 100) is None

    def test_generate_invoices_once_per_month(self, service, store):
        invoices = service.generate_invoices("2024-03")

        assert [(inv.student_id, inv.amount) for inv in invoices] == [(1, 2055)]
        assert invoices[0].subjects == ["Математика", "Английский"]
        assert stored_student(store, 1).balance == -2055

        assert service.generate_invoices("2024-03") == []
        assert stored_student(store, 1).balance == -2055

    def test_pay_invoice(self, service, store):
        invoice = service.generate_invoices()[0]
        assert invoice.month == "2024-03"

        transaction = service.pay_invoice(invoice.id)

        assert transaction.amount == 2055
        assert stored_student(store, 1).balance == 0
        assert service.load_invoices()[0].status == INVOICE_PAID
        assert service.pay_invoice(invoice.id) is None

    def test_debtors(self, service):
        service.generate_invoices("2024-03")
        debtors = service.debtors()

        assert [(s.id, status) for s, status in debtors] == [(1, "critical")]

    def test_debt_promise(self, service, store):
        service.generate_invoices("2024-03")
        service.record_payment(1, 1000, promise_reason="Аванс", promise_date=date(2024, 3, 25))

        student = stored_student(store, 1)
        assert student.balance == -1055
        assert student.debt_promise == "Аванс"
        assert student.debt_promise_deadline == date(2024, 3, 25)


class TestExamsStorage:
    """Тесты хранения результатов экзаменов."""

    def test_round_trip_through_store(self, store):
        result = ExamResult(id=7, student_id=1, subject="Математика", date=date(2024, 1, 1),
                            score=9, max_score=10, is_extra=False, feedback="Хорошо")
        store.set(StorageKeys.EXAM_RESULTS, [result.to_dict()])

        assert load_entities(store, StorageKeys.EXAM_RESULTS, ExamResult) == [result]
