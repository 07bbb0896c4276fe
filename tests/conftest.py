"""
Фикстуры для тестов.
"""

import pytest
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from crm.database.models import Base
from crm.entities import (
    AttendanceEvent,
    BranchConfig,
    Course,
    ExamResult,
    Group,
    Student,
    SubjectDetail,
)
from crm.states import AttendanceMark, PipelineStage, StudentStatus
from crm.store import MemoryStore, StorageKeys

TODAY = date(2024, 3, 15)


class FakeClock:
    """Управляемые часы для буфера отмены."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
def engine():
    """Создать тестовый движок SQLite в памяти."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(engine):
    """Фабрика сессий поверх тестового движка."""
    return sessionmaker(bind=engine)


@pytest.fixture(scope="function")
def session(session_factory):
    """Создать тестовую сессию."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def courses():
    """Каталог: математика с филиальной ценой, английский с настройкой филиала, физика."""
    return [
        Course(id=1, name="Математика", price=1000, branch_prices={"Центр": 1200}),
        Course(
            id=2,
            name="Английский",
            price=800,
            branch_prices={"Центр": 900},
            branch_config={
                "Центр": BranchConfig(price=950, target_students=20, is_active=True),
                "Сино": BranchConfig(price=700, target_students=10, is_active=False),
            },
        ),
        Course(id=3, name="Физика", price=850),
    ]


@pytest.fixture
def groups():
    return [
        Group(id=10, subject="Математика", name="Математика 1"),
        Group(id=11, subject="Математика", name="Математика 2"),
        Group(id=20, subject="Английский", name="Английский A1"),
        Group(id=30, subject="Физика", name="Физика 9"),
    ]


@pytest.fixture
def active_student():
    """Активный ученик с двумя предметами."""
    return Student(
        id=1,
        full_name="Иванов Иван",
        phone="+992900000001",
        status=StudentStatus.ACTIVE,
        pipeline_stage=PipelineStage.PAYMENT,
        subjects=["Математика", "Английский"],
        group_ids=[10, 20],
        subject_discounts={"Английский": 10},
        subject_details={
            "Математика": SubjectDetail(start_date=date(2024, 1, 10)),
            "Английский": SubjectDetail(start_date=date(2024, 1, 10)),
        },
        branch="Центр",
        start_date=date(2024, 1, 10),
    )


@pytest.fixture
def lead():
    """Лид на первом этапе воронки."""
    return Student(
        id=2,
        full_name="Петрова Анна",
        phone="+992900000002",
        status=StudentStatus.PRESALE,
        pipeline_stage=PipelineStage.NEW,
        subjects=["Физика"],
        branch="Центр",
        presale_date=date(2024, 3, 1),
    )


@pytest.fixture
def attendance_events():
    """Журнал: 4 занятия по математике, 2 по английскому у ученика 1."""
    P, N, O = AttendanceMark.PRESENT, AttendanceMark.ABSENT, AttendanceMark.LATE
    return [
        AttendanceEvent(group_id=10, date=date(2024, 3, 1), topic="Дроби", marks={1: P, 2: N}),
        AttendanceEvent(group_id=10, date=date(2024, 3, 4), topic="Уравнения", marks={1: P}),
        AttendanceEvent(group_id=10, date=date(2024, 3, 6), topic="Неравенства", marks={1: N}),
        AttendanceEvent(group_id=10, date=date(2024, 3, 8), topic="Функции", marks={1: P}),
        AttendanceEvent(group_id=20, date=date(2024, 3, 2), topic="Present Simple", marks={1: O}),
        AttendanceEvent(group_id=20, date=date(2024, 3, 9), topic="Past Simple", marks={1: P}),
    ]


@pytest.fixture
def exam_results():
    """Экзамены ученика 1: математика и английский по программе, химия - вне программы."""
    return [
        ExamResult(id=1, student_id=1, subject="Математика", date=date(2024, 1, 20), score=40, max_score=50),
        ExamResult(id=2, student_id=1, subject="Английский", date=date(2024, 1, 25), score=30, max_score=40),
        ExamResult(id=3, student_id=1, subject="Математика", date=date(2024, 2, 18), score=45, max_score=50),
        ExamResult(id=4, student_id=1, subject="Химия", date=date(2024, 2, 18), score=10, max_score=20, is_extra=True),
        ExamResult(id=5, student_id=1, subject="Английский", date=date(2024, 2, 26), score=36, max_score=40),
    ]


@pytest.fixture
def store(courses, groups, active_student, lead):
    """Хранилище в памяти с каталогом, группами и двумя учениками."""
    return MemoryStore({
        StorageKeys.COURSES: [c.to_dict() for c in courses],
        StorageKeys.GROUPS: [g.to_dict() for g in groups],
        StorageKeys.STUDENTS: [active_student.to_dict(), lead.to_dict()],
    }, user_name="Тест")
