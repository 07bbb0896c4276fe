"""
Сущности CRM.

Хранилище держит документы в camelCase JSON (как их пишет веб-клиент центра),
здесь они превращаются в dataclass-объекты и обратно:
- Student: ученик / лид воронки
- Course: курс с базовой ценой и филиальными переопределениями
- Group: учебная группа
- AttendanceEvent: занятие группы на дату с отметками учеников
- ExamResult: результат экзамена
- Transaction, Invoice: оплаты и счета
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from crm.states import StudentStatus, PipelineStage, AttendanceMark
from crm.utils.dates import to_date

logger = logging.getLogger(__name__)


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


def _parse_status(value) -> StudentStatus:
    try:
        return StudentStatus(value)
    except ValueError:
        logger.warning("Неизвестный статус %r, используется 'Предзапись'", value)
        return StudentStatus.PRESALE


def _parse_stage(value) -> PipelineStage:
    try:
        return PipelineStage(value)
    except ValueError:
        logger.warning("Неизвестный этап воронки %r, используется 'Записан'", value)
        return PipelineStage.NEW


@dataclass
class SubjectDetail:
    """Даты начала и окончания обучения по предмету."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SubjectDetail":
        return cls(
            start_date=to_date(data.get("startDate")),
            end_date=to_date(data.get("endDate")),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
        })


_STUDENT_KEYS = {
    "id", "fullName", "phone", "status", "pipelineStage", "subjects", "groupIds",
    "subjectDiscounts", "subjectDetails", "balance", "monthlyFee",
    "discountPercent", "discountDuration", "branch", "source", "presaleDate",
    "startDate", "endDate", "dropOffDate", "leaveReason", "debtPromise",
    "debtPromiseDeadline", "lastAttendance", "consecutiveAbsences", "createdAt",
    "lastModifiedBy", "lastModifiedAt",
}


@dataclass
class Student:
    """
    Ученик (или лид, пока статус 'Предзапись').

    Коллекции subjects / group_ids / subject_discounts / subject_details
    всегда присутствуют, чтобы снимки можно было сравнивать целиком.
    """
    id: int = 0
    full_name: str = ""
    phone: str = ""
    status: StudentStatus = StudentStatus.PRESALE
    pipeline_stage: PipelineStage = PipelineStage.NEW
    subjects: list[str] = field(default_factory=list)
    group_ids: list[int] = field(default_factory=list)
    subject_discounts: dict[str, float] = field(default_factory=dict)
    subject_details: dict[str, SubjectDetail] = field(default_factory=dict)
    balance: int = 0
    monthly_fee: int = 0
    discount_percent: Optional[float] = None
    discount_duration: Optional[int] = None
    branch: Optional[str] = None
    source: str = "Не указано"
    presale_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    drop_off_date: Optional[date] = None
    leave_reason: Optional[str] = None
    debt_promise: Optional[str] = None
    debt_promise_deadline: Optional[date] = None
    last_attendance: Optional[date] = None
    consecutive_absences: int = 0
    created_at: Optional[str] = None
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[str] = None
    # Дополнительные поля компании (динамическая анкета) - сохраняются как есть
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Student":
        subjects = []
        for subject in data.get("subjects") or []:
            if subject not in subjects:
                subjects.append(subject)

        return cls(
            id=data.get("id", 0),
            full_name=data.get("fullName", ""),
            phone=data.get("phone", ""),
            status=_parse_status(data.get("status", StudentStatus.PRESALE.value)),
            pipeline_stage=_parse_stage(data.get("pipelineStage", PipelineStage.NEW.value)),
            subjects=subjects,
            group_ids=list(data.get("groupIds") or []),
            subject_discounts=dict(data.get("subjectDiscounts") or {}),
            subject_details={
                subject: SubjectDetail.from_dict(detail or {})
                for subject, detail in (data.get("subjectDetails") or {}).items()
            },
            balance=data.get("balance", 0),
            monthly_fee=data.get("monthlyFee", 0),
            discount_percent=data.get("discountPercent"),
            discount_duration=data.get("discountDuration"),
            branch=data.get("branch"),
            source=data.get("source", "Не указано"),
            presale_date=to_date(data.get("presaleDate")),
            start_date=to_date(data.get("startDate")),
            end_date=to_date(data.get("endDate")),
            drop_off_date=to_date(data.get("dropOffDate")),
            leave_reason=data.get("leaveReason"),
            debt_promise=data.get("debtPromise"),
            debt_promise_deadline=to_date(data.get("debtPromiseDeadline")),
            last_attendance=to_date(data.get("lastAttendance")),
            consecutive_absences=data.get("consecutiveAbsences", 0),
            created_at=data.get("createdAt"),
            last_modified_by=data.get("lastModifiedBy"),
            last_modified_at=data.get("lastModifiedAt"),
            extra={k: v for k, v in data.items() if k not in _STUDENT_KEYS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(_drop_none({
            "id": self.id,
            "fullName": self.full_name,
            "phone": self.phone,
            "status": self.status.value,
            "pipelineStage": self.pipeline_stage.value,
            "subjects": list(self.subjects),
            "groupIds": list(self.group_ids),
            "subjectDiscounts": dict(self.subject_discounts),
            "subjectDetails": {s: d.to_dict() for s, d in self.subject_details.items()},
            "balance": self.balance,
            "monthlyFee": self.monthly_fee,
            "discountPercent": self.discount_percent,
            "discountDuration": self.discount_duration,
            "branch": self.branch,
            "source": self.source,
            "presaleDate": _iso(self.presale_date),
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "dropOffDate": _iso(self.drop_off_date),
            "leaveReason": self.leave_reason,
            "debtPromise": self.debt_promise,
            "debtPromiseDeadline": _iso(self.debt_promise_deadline),
            "lastAttendance": _iso(self.last_attendance),
            "consecutiveAbsences": self.consecutive_absences,
            "createdAt": self.created_at,
            "lastModifiedBy": self.last_modified_by,
            "lastModifiedAt": self.last_modified_at,
        }))
        return data

    def __repr__(self) -> str:
        return f"Student(id={self.id}, full_name={self.full_name!r}, status={self.status.value!r})"


@dataclass
class BranchConfig:
    """Настройки курса в конкретном филиале."""
    price: int = 0
    target_students: int = 0
    is_active: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "BranchConfig":
        return cls(
            price=data.get("price", 0),
            target_students=data.get("targetStudents", 0),
            is_active=bool(data.get("isActive", False)),
        )

    def to_dict(self) -> dict:
        return {"price": self.price, "targetStudents": self.target_students, "isActive": self.is_active}


@dataclass
class Course:
    """Курс (предмет) каталога."""
    name: str
    id: int = 0
    price: Optional[int] = None
    branch_prices: dict[str, int] = field(default_factory=dict)
    branch_config: dict[str, BranchConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Course":
        return cls(
            id=data.get("id", 0),
            name=data.get("name", ""),
            price=data.get("price"),
            branch_prices=dict(data.get("branchPrices") or {}),
            branch_config={
                branch: BranchConfig.from_dict(conf or {})
                for branch, conf in (data.get("branchConfig") or {}).items()
            },
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "branchPrices": dict(self.branch_prices),
            "branchConfig": {b: c.to_dict() for b, c in self.branch_config.items()},
        })


@dataclass
class Group:
    """Учебная группа по одному предмету."""
    id: int
    subject: str
    name: str = ""
    max_students: int = 10
    students_count: int = 0
    branch: Optional[str] = None
    teacher: Optional[str] = None

    @property
    def is_full(self) -> bool:
        return self.students_count >= self.max_students

    @classmethod
    def from_dict(cls, data: dict) -> "Group":
        return cls(
            id=data["id"],
            subject=data.get("subject", ""),
            name=data.get("name", ""),
            max_students=data.get("maxStudents", 10),
            students_count=data.get("studentsCount", 0),
            branch=data.get("branch"),
            teacher=data.get("teacher"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "subject": self.subject,
            "name": self.name,
            "maxStudents": self.max_students,
            "studentsCount": self.students_count,
            "branch": self.branch,
            "teacher": self.teacher,
        })


@dataclass
class AttendanceEvent:
    """Занятие группы на дату: тема и отметки {student_id: отметка}."""
    group_id: int
    date: date
    topic: str = ""
    marks: dict[int, AttendanceMark] = field(default_factory=dict)
    subject: Optional[str] = None

    @property
    def key(self) -> tuple[int, date]:
        return self.group_id, self.date

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceEvent":
        marks = {}
        for student_id, mark in (data.get("marks") or {}).items():
            try:
                marks[int(student_id)] = AttendanceMark(mark)
            except ValueError:
                logger.warning("Пропущена неизвестная отметка %r (ученик %s)", mark, student_id)
        return cls(
            group_id=data["groupId"],
            date=to_date(data["date"]),
            topic=data.get("topic", ""),
            marks=marks,
            subject=data.get("subject"),
        )

    def to_dict(self) -> dict:
        # Ключи JSON-объекта всегда строки
        return _drop_none({
            "groupId": self.group_id,
            "date": self.date.isoformat(),
            "topic": self.topic,
            "marks": {str(sid): mark.value for sid, mark in self.marks.items()},
            "subject": self.subject,
        })


@dataclass
class ExamResult:
    """Результат экзамена ученика."""
    student_id: int
    subject: str
    date: date
    score: float
    max_score: float
    is_extra: bool = False
    id: int = 0
    student_name: Optional[str] = None
    feedback: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ExamResult":
        return cls(
            id=data.get("id", 0),
            student_id=data["studentId"],
            student_name=data.get("studentName"),
            subject=data.get("subject", ""),
            date=to_date(data["date"]),
            score=data.get("score", 0),
            max_score=data.get("maxScore", 0),
            is_extra=bool(data.get("isExtra", False)),
            feedback=data.get("feedback"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "subject": self.subject,
            "date": self.date.isoformat(),
            "score": self.score,
            "maxScore": self.max_score,
            "isExtra": self.is_extra,
            "feedback": self.feedback,
        })


@dataclass
class Transaction:
    """Движение денег по ученику."""
    id: int
    student_id: int
    student_name: str
    amount: int
    date: date
    type: str = "Payment"
    purpose: str = ""
    payment_method: Optional[str] = None
    created_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            id=data["id"],
            student_id=data["studentId"],
            student_name=data.get("studentName", ""),
            amount=data.get("amount", 0),
            date=to_date(data["date"]),
            type=data.get("type", "Payment"),
            purpose=data.get("purpose", ""),
            payment_method=data.get("paymentMethod"),
            created_by=data.get("createdBy"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "type": self.type,
            "purpose": self.purpose,
            "paymentMethod": self.payment_method,
            "createdBy": self.created_by,
        })


INVOICE_PAID = "Оплачен"
INVOICE_PENDING = "Ожидает"


@dataclass
class Invoice:
    """Ежемесячный счёт ученику."""
    id: int
    student_id: int
    student_name: str
    amount: int
    month: str
    status: str = INVOICE_PENDING
    created_at: Optional[str] = None
    subjects: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        return cls(
            id=data["id"],
            student_id=data["studentId"],
            student_name=data.get("studentName", ""),
            amount=data.get("amount", 0),
            month=data.get("month", ""),
            status=data.get("status", INVOICE_PENDING),
            created_at=data.get("createdAt"),
            subjects=list(data.get("subjects") or []),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "amount": self.amount,
            "month": self.month,
            "status": self.status,
            "createdAt": self.created_at,
            "subjects": list(self.subjects),
        })
