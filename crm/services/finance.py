"""
Сервис оплат: приём платежей, ежемесячные счета, должники.
"""

import logging
from datetime import date
from typing import Optional

from crm.entities import INVOICE_PAID, INVOICE_PENDING, Invoice, Student, Transaction
from crm.services.base import BaseService, find_index, generate_id
from crm.states import Severity, StudentStatus
from crm.store import StorageKeys, load_entities, save_entities
from crm.utils.dates import local_now_iso, month_key
from crm.utils.finance import (
    apply_payment,
    calculate_fees,
    debtor_status,
    distribute_payment,
    payment_purpose,
)

logger = logging.getLogger(__name__)


class FinanceService(BaseService):
    """Платежи и счета учеников."""

    def load_transactions(self) -> list[Transaction]:
        return load_entities(self.store, StorageKeys.TRANSACTIONS, Transaction)

    def load_invoices(self) -> list[Invoice]:
        return load_entities(self.store, StorageKeys.INVOICES, Invoice)

    def record_payment(
        self,
        student_id: int,
        amount: int,
        method: str = "Наличные",
        promise_reason: Optional[str] = None,
        promise_date: Optional[date] = None,
    ) -> Optional[Transaction]:
        """
        Принять оплату: транзакция с разбивкой по предметам и пополнение баланса.

        Raises:
            ValueError: если сумма не положительная
        """
        if amount <= 0:
            raise ValueError("Сумма оплаты должна быть больше нуля")

        students = self.load_students()
        index = find_index(students, student_id)
        if index is None:
            logger.warning("Оплата не принята: ученик %s не найден", student_id)
            return None

        student = students[index]
        summary = calculate_fees(student, self.load_courses())
        transactions = self.load_transactions()

        transaction = Transaction(
            id=generate_id(t.id for t in transactions),
            student_id=student.id,
            student_name=student.full_name,
            amount=amount,
            date=self.today(),
            type="Payment",
            purpose=payment_purpose(distribute_payment(amount, summary)),
            payment_method=method,
            created_by=self.user_name,
        )
        transactions.append(transaction)
        save_entities(self.store, StorageKeys.TRANSACTIONS, transactions)

        students[index] = self.stamp(apply_payment(student, amount, promise_reason, promise_date))
        self.save_students(students)
        logger.info("Оплата %s от ученика %s, баланс %s", amount, student_id, students[index].balance)

        self.notify(f"Оплата {amount} от {student.full_name} принята", Severity.SUCCESS)
        self.log_action("Оплата", transaction.purpose, student_id)
        return transaction

    def generate_invoices(self, month: Optional[str] = None) -> list[Invoice]:
        """
        Выставить счета за месяц (YYYY-MM) активным ученикам.

        Счёт выставляется один раз на ученика в месяц и списывает сумму с баланса.
        """
        month = month or month_key(self.today())
        invoices = self.load_invoices()
        invoiced = {inv.student_id for inv in invoices if inv.month == month}
        used_ids = {inv.id for inv in invoices}

        students = self.load_students()
        created = []
        for index, student in enumerate(students):
            if student.status != StudentStatus.ACTIVE or student.monthly_fee <= 0:
                continue
            if student.id in invoiced:
                continue

            invoice = Invoice(
                id=generate_id(used_ids),
                student_id=student.id,
                student_name=student.full_name,
                amount=student.monthly_fee,
                month=month,
                status=INVOICE_PENDING,
                created_at=local_now_iso(),
                subjects=list(student.subjects),
            )
            used_ids.add(invoice.id)
            created.append(invoice)
            student.balance -= invoice.amount

        if not created:
            logger.info("Счета за %s: новых нет", month)
            return []

        save_entities(self.store, StorageKeys.INVOICES, invoices + created)
        self.save_students(students)
        logger.info("Счета за %s: выставлено %s", month, len(created))

        self.notify(f"Выставлено счетов за {month}: {len(created)}", Severity.INFO)
        self.log_action("Счета", f"{month}: {len(created)}")
        return created

    def pay_invoice(self, invoice_id: int, method: str = "Наличные") -> Optional[Transaction]:
        """Оплатить счёт целиком."""
        invoices = self.load_invoices()
        invoice = next((inv for inv in invoices if inv.id == invoice_id), None)
        if invoice is None:
            logger.warning("Счёт %s не найден", invoice_id)
            return None
        if invoice.status == INVOICE_PAID:
            logger.warning("Счёт %s уже оплачен", invoice_id)
            return None

        transaction = self.record_payment(invoice.student_id, invoice.amount, method)
        if transaction is None:
            return None

        invoice.status = INVOICE_PAID
        save_entities(self.store, StorageKeys.INVOICES, invoices)
        return transaction

    def debtors(self) -> list[tuple[Student, str]]:
        """Должники (самый большой долг сверху) со стадией работы с ними."""
        day = self.today().day
        debtors = [(s, debtor_status(s.balance, day)) for s in self.load_students() if s.balance < 0]
        debtors.sort(key=lambda item: item[0].balance)
        return debtors
