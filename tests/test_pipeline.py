"""
Тесты для воронки и жизненного цикла ученика.
"""

import copy
import pytest
from datetime import date

from crm.entities import SubjectDetail
from crm.pipeline import (
    ACTIVATION_LABEL,
    SUBJECT_REMOVAL_LABEL,
    Activate,
    AddSubject,
    Advance,
    AssignGroup,
    ChangeStatus,
    MoveToStage,
    RemoveSubject,
    activate,
    add_subject,
    advance,
    assign_group,
    change_status,
    move_to_stage,
    next_stage,
    remove_subject,
    restore_fields,
    transition,
)
from crm.states import PIPELINE_ORDER, PipelineStage, StudentStatus


class TestAdvance:
    """Тесты продвижения по воронке."""

    def test_linear_order(self, lead, today):
        """Записан -> Тестирование -> Пробный урок -> Договор -> Ожидает оплаты."""
        student = lead
        stages = [student.pipeline_stage]
        for _ in range(len(PIPELINE_ORDER) - 1):
            result = advance(student, today)
            assert result.undo is None
            student = result.student
            stages.append(student.pipeline_stage)

        assert stages == PIPELINE_ORDER
        assert student.status == StudentStatus.PRESALE

    def test_trial_goes_to_contract(self, lead, today):
        lead.pipeline_stage = PipelineStage.TRIAL
        assert advance(lead, today).student.pipeline_stage == PipelineStage.CONTRACT

    def test_payment_activates(self, lead, today):
        """С этапа 'Ожидает оплаты' - активация."""
        lead.pipeline_stage = PipelineStage.PAYMENT
        result = advance(lead, today)

        assert result.student.status == StudentStatus.ACTIVE
        assert result.student.pipeline_stage == PipelineStage.PAYMENT
        assert result.undo.label == ACTIVATION_LABEL

    def test_input_not_mutated(self, lead, today):
        before = copy.deepcopy(lead)
        advance(lead, today)
        assert lead == before

    def test_next_stage(self):
        assert next_stage(PipelineStage.NEW) == PipelineStage.CALL
        assert next_stage(PipelineStage.PAYMENT) is None


class TestActivate:
    """Тесты активации."""

    def test_dates_stamped(self, lead, today):
        result = activate(lead, today)

        assert result.student.start_date == today
        assert result.student.subject_details["Физика"].start_date == today

    def test_existing_dates_kept(self, lead, today):
        """Повторная активация не сдвигает даты."""
        lead.start_date = date(2024, 1, 1)
        lead.subject_details["Физика"] = SubjectDetail(start_date=date(2024, 1, 5))

        first = activate(lead, today).student
        second = activate(first, date(2024, 4, 1)).student

        assert second.start_date == date(2024, 1, 1)
        assert second.subject_details["Физика"].start_date == date(2024, 1, 5)

    def test_undo_payload(self, lead, today):
        """Снимок для отмены хранит состояние до активации."""
        result = activate(lead, today)
        payload = result.undo.payload

        assert payload["student_id"] == lead.id
        assert payload["fields"]["status"] == StudentStatus.PRESALE
        assert payload["fields"]["start_date"] is None
        assert payload["fields"]["subject_details"] == {}
        assert result.undo.expires_in_seconds == 5

    def test_restore_reverts_activation(self, lead, today):
        result = activate(lead, today)
        restored = restore_fields(result.student, result.undo.payload)

        assert restored == lead


class TestMoveToStage:
    """Тесты ручного переноса."""

    def test_any_stage(self, lead):
        """Перенос через этапы разрешён."""
        result = move_to_stage(lead, PipelineStage.CONTRACT)
        assert result.student.pipeline_stage == PipelineStage.CONTRACT

    def test_never_activates(self, lead):
        result = move_to_stage(lead, PipelineStage.PAYMENT)

        assert result.student.status == StudentStatus.PRESALE
        assert result.undo is None

    def test_same_stage_noop(self, lead):
        assert move_to_stage(lead, PipelineStage.NEW).student is lead

    def test_accepts_value(self, lead):
        assert move_to_stage(lead, "Договор").student.pipeline_stage == PipelineStage.CONTRACT


class TestChangeStatus:
    """Тесты смены статуса."""

    @pytest.mark.parametrize("status, field", [
        (StudentStatus.ACTIVE, "start_date"),
        (StudentStatus.ARCHIVED, "end_date"),
        (StudentStatus.DROPPED, "drop_off_date"),
    ])
    def test_date_stamped(self, lead, today, status, field):
        result = change_status(lead, status, today)
        assert result.student.status == status
        assert getattr(result.student, field) == today

    def test_presale_date_kept(self, lead, today):
        result = change_status(lead, StudentStatus.PRESALE, today)
        assert result.student.presale_date == date(2024, 3, 1)

    def test_existing_end_date_kept(self, active_student, today):
        active_student.end_date = date(2024, 2, 1)
        result = change_status(active_student, StudentStatus.ARCHIVED, today)
        assert result.student.end_date == date(2024, 2, 1)

    def test_reactivation_clears_end_dates(self, active_student, today):
        """Возврат в активные снимает даты окончания и ухода."""
        active_student.status = StudentStatus.DROPPED
        active_student.end_date = date(2024, 2, 1)
        active_student.drop_off_date = date(2024, 2, 1)

        result = change_status(active_student, StudentStatus.ACTIVE, today)

        assert result.student.end_date is None
        assert result.student.drop_off_date is None
        assert result.student.start_date == date(2024, 1, 10)

    def test_paused_stamps_nothing(self, active_student, today):
        result = change_status(active_student, StudentStatus.PAUSED, today)
        assert result.student.end_date is None
        assert result.student.drop_off_date is None


class TestSubjects:
    """Тесты предметов и групп."""

    def test_remove_subject(self, active_student, groups, today):
        result = remove_subject(active_student, "Английский", today, groups)
        student = result.student

        assert student.subjects == ["Математика"]
        assert student.group_ids == [10]
        assert "Английский" not in student.subject_discounts
        assert student.subject_details["Английский"].end_date == today
        assert result.undo.label == SUBJECT_REMOVAL_LABEL

    def test_remove_subject_undo_restores(self, active_student, groups, today):
        result = remove_subject(active_student, "Английский", today, groups)
        restored = restore_fields(result.student, result.undo.payload)

        assert restored.subjects == active_student.subjects
        assert restored.group_ids == active_student.group_ids
        assert restored.subject_discounts == active_student.subject_discounts
        assert restored.subject_details == active_student.subject_details

    def test_remove_missing_subject(self, active_student, groups, today):
        result = remove_subject(active_student, "Химия", today, groups)
        assert result.student is active_student
        assert result.undo is None

    def test_add_subject_idempotent(self, active_student):
        assert add_subject(active_student, "Математика").student is active_student
        assert add_subject(active_student, "Физика").student.subjects == ["Математика", "Английский", "Физика"]

    def test_one_group_per_subject(self, active_student, groups):
        """Новая группа предмета заменяет прежнюю."""
        result = assign_group(active_student, "Математика", 11, groups)
        assert sorted(result.student.group_ids) == [11, 20]

    def test_unassign_group(self, active_student, groups):
        result = assign_group(active_student, "Английский", None, groups)
        assert result.student.group_ids == [10]

    def test_assign_adds_subject(self, active_student, groups):
        result = assign_group(active_student, "Физика", 30, groups)
        assert "Физика" in result.student.subjects
        assert 30 in result.student.group_ids


class TestTransition:
    """Тесты диспетчера событий."""

    def test_dispatch(self, lead, groups, today):
        assert transition(lead, Advance(), today).student.pipeline_stage == PipelineStage.CALL
        assert transition(lead, MoveToStage(PipelineStage.TRIAL), today).student.pipeline_stage == PipelineStage.TRIAL
        assert transition(lead, Activate(), today).student.status == StudentStatus.ACTIVE
        assert transition(lead, ChangeStatus(StudentStatus.DROPPED), today).student.drop_off_date == today
        assert "Химия" in transition(lead, AddSubject("Химия"), today).student.subjects
        assert transition(lead, RemoveSubject("Физика"), today, groups).student.subjects == []
        assert transition(lead, AssignGroup("Физика", 30), today, groups).student.group_ids == [30]

    def test_unknown_event(self, lead, today):
        with pytest.raises(TypeError):
            transition(lead, object(), today)
