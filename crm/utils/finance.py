"""
Финансовый расчёт: цена предмета, скидка, ежемесячный платёж.

Порядок определения базовой цены предмета:
1. branch_config[филиал], если он активен
2. branch_prices[филиал]
3. course.price
4. 0, если курса нет в каталоге (каталог и запись ученика редактируются независимо)
"""

import copy
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from crm.entities import Course, Student
from crm.utils.rounding import round_half_up, to_decimal


@dataclass
class SubjectFee:
    """Расчёт по одному предмету."""
    subject: str
    base_price: int
    discount: float
    final_price: int


@dataclass
class FeeSummary:
    """Итог расчёта платежа ученика."""
    lines: list[SubjectFee] = field(default_factory=list)
    total_monthly_fee: int = 0

    @property
    def total_base_fee(self) -> int:
        return sum(line.base_price for line in self.lines)


def clamp_discount(value) -> float:
    """Ограничить скидку диапазоном [0, 100]."""
    value = float(value)
    if value.is_integer():
        value = int(value)
    return min(100, max(0, value))


def find_course(courses: Iterable[Course], subject: str) -> Optional[Course]:
    """Найти курс по названию предмета."""
    for course in courses:
        if course.name == subject:
            return course
    return None


def resolve_base_price(course: Optional[Course], branch: Optional[str]) -> int:
    """Базовая цена курса с учётом филиала."""
    if course is None:
        return 0

    if branch:
        conf = course.branch_config.get(branch)
        if conf is not None and conf.is_active:
            return conf.price

        if branch in course.branch_prices:
            return course.branch_prices[branch]

    return course.price or 0


def effective_discount(student: Student, subject: str) -> float:
    """Скидка по предмету: своя, иначе общая скидка ученика, иначе 0."""
    if subject in student.subject_discounts:
        return clamp_discount(student.subject_discounts[subject])
    if student.discount_percent is not None:
        return clamp_discount(student.discount_percent)
    return 0


def clamp_discounts(student: Student) -> Student:
    """Копия ученика со всеми скидками в диапазоне [0, 100]."""
    updated = copy.deepcopy(student)
    updated.subject_discounts = {
        subject: clamp_discount(value) for subject, value in updated.subject_discounts.items()
    }
    if updated.discount_percent is not None:
        updated.discount_percent = clamp_discount(updated.discount_percent)
    return updated


def apply_discount(base_price: int, discount: float) -> int:
    """Цена со скидкой, округлённая до целого."""
    return round_half_up(to_decimal(base_price) * (100 - to_decimal(discount)) / 100)


def calculate_fees(student: Student, courses: Iterable[Course]) -> FeeSummary:
    """Разбивка платежа по предметам и итоговый ежемесячный платёж."""
    courses = list(courses)
    summary = FeeSummary()

    for subject in student.subjects:
        base_price = resolve_base_price(find_course(courses, subject), student.branch)
        discount = effective_discount(student, subject)
        final_price = apply_discount(base_price, discount)
        summary.lines.append(SubjectFee(subject, base_price, discount, final_price))

    summary.total_monthly_fee = sum(line.final_price for line in summary.lines)
    return summary


def sync_monthly_fee(student: Student, courses: Iterable[Course]) -> tuple[Student, bool]:
    """
    Пересчитать и записать monthly_fee.

    Запись односторонняя: сохранённый monthly_fee никогда не участвует в расчёте.

    Returns:
        (ученик, изменился ли платёж) - если не изменился, возвращается тот же объект
    """
    total = calculate_fees(student, courses).total_monthly_fee
    if student.monthly_fee == total:
        return student, False

    updated = copy.deepcopy(student)
    updated.monthly_fee = total
    return updated, True


def set_subject_discount(student: Student, subject: str, value) -> Student:
    """Установить скидку по предмету (с ограничением [0, 100])."""
    updated = copy.deepcopy(student)
    updated.subject_discounts[subject] = clamp_discount(value)
    return updated


def set_discount_percent(student: Student, value, duration: Optional[int] = None) -> Student:
    """Установить общую скидку ученика и срок её действия в месяцах (None - бессрочно)."""
    updated = copy.deepcopy(student)
    updated.discount_percent = clamp_discount(value)
    updated.discount_duration = duration
    return updated


# === Оплаты ===

def distribute_payment(amount: int, summary: FeeSummary) -> dict[str, int]:
    """
    Распределить оплату по предметам.

    Предметы заполняются по очереди до своей цены, переплата уходит в первый предмет.
    """
    distribution: dict[str, int] = {}
    remaining = amount

    for line in summary.lines:
        alloc = min(remaining, line.final_price)
        distribution[line.subject] = alloc
        remaining -= alloc

    if remaining > 0 and summary.lines:
        distribution[summary.lines[0].subject] += remaining

    return distribution


def payment_purpose(distribution: dict[str, int]) -> str:
    """Назначение платежа с разбивкой по предметам."""
    purpose = "Оплата за обучение"
    details = ", ".join(f"{subject}: {amount}" for subject, amount in distribution.items() if amount > 0)
    if details:
        purpose += f" ({details})"
    return purpose


def apply_payment(
    student: Student,
    amount: int,
    promise_reason: Optional[str] = None,
    promise_date: Optional[date] = None,
) -> Student:
    """
    Зачислить оплату на баланс.

    Пока баланс отрицательный, обещание погасить долг обновляется (если передано);
    как только долг погашен - обещание снимается.
    """
    updated = copy.deepcopy(student)
    updated.balance = student.balance + amount

    if updated.balance >= 0:
        updated.debt_promise = None
        updated.debt_promise_deadline = None
    else:
        if promise_reason:
            updated.debt_promise = promise_reason
        if promise_date:
            updated.debt_promise_deadline = promise_date

    return updated


def debtor_status(balance: int, day_of_month: int) -> str:
    """Стадия работы с должником в зависимости от дня месяца."""
    if balance >= 0:
        return "ok"
    if day_of_month <= 5:
        return "warning-soft"   # 1-5: напоминание
    if day_of_month <= 10:
        return "warning-hard"   # 6-10: звонки
    return "critical"           # дальше: приостановка
