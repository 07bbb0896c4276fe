"""
Обработчики карточки ученика: платёж, посещаемость, график экзаменов, отчёт XLSX.
"""

import logging
from telegram import Update
from telegram.ext import (
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from crm.handlers.common import format_money, format_percentage, get_store_from_update
from crm.services import JournalService, StudentService
from crm.states import ProfileStates
from crm.utils.charts import (
    create_course_attendance_chart,
    create_exam_heatmap_chart,
    create_exam_progress_chart,
)
from crm.utils.dates import format_date
from crm.utils.exams import exam_time_series
from crm.utils.export import create_student_report

logger = logging.getLogger(__name__)


async def student_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Обработчик команды /student <id>."""
    if context.args:
        return await show_student(update, context, context.args[0])

    await update.message.reply_text(
        "👤 Введите ID ученика:\n\nДля отмены отправьте /cancel"
    )
    return ProfileStates.WAITING_STUDENT_ID


async def student_id_received(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Получение ID ученика."""
    return await show_student(update, context, update.message.text)


async def show_student(update: Update, context: ContextTypes.DEFAULT_TYPE, raw_id: str) -> int:
    """Показать карточку, графики экзаменов и посещаемости, отправить отчёт."""
    try:
        student_id = int(raw_id.strip())
    except ValueError:
        await update.message.reply_text("❌ ID должен быть числом. Попробуйте ещё раз:")
        return ProfileStates.WAITING_STUDENT_ID

    store = get_store_from_update(update)
    students = StudentService(store, user_name=store.user_name)
    journal = JournalService(store, user_name=store.user_name)

    student = students.get(student_id)
    if student is None:
        await update.message.reply_text("❌ Ученик не найден. Попробуйте ещё раз:")
        return ProfileStates.WAITING_STUDENT_ID

    fees = students.fee_summary(student_id)
    attendance = journal.student_attendance(student_id)
    exams = journal.student_exams(student_id)

    lines = [
        f"👤 <b>{student.full_name}</b>",
        f"Статус: {student.status.value}",
        f"Этап: {student.pipeline_stage.value}",
    ]
    if student.start_date:
        lines.append(f"Начало обучения: {format_date(student.start_date)}")

    lines.append("\n💰 <b>Оплата</b>")
    for line in fees.lines:
        discount = f" (−{line.discount}%)" if line.discount else ""
        lines.append(f"• {line.subject}: {format_money(line.final_price)}{discount}")
    lines.append(f"Итого в месяц: <b>{format_money(fees.total_monthly_fee)}</b>")
    lines.append(f"Баланс: {format_money(student.balance)}")

    totals = attendance.totals
    lines.append("\n📅 <b>Посещаемость</b>")
    if totals.total:
        lines.append(f"{format_percentage(totals.percent)} ({totals.present}/{totals.total})")
        for subject, counts in attendance.by_course.items():
            lines.append(f"• {subject}: {counts.percent}%")
    else:
        lines.append("Занятий пока нет.")

    await update.message.reply_text("\n".join(lines), parse_mode="HTML")

    chart = create_exam_progress_chart(exam_time_series(exams), student.full_name)
    if chart:
        await update.message.reply_photo(photo=chart, caption="📈 Результаты экзаменов")

    heatmap = journal.student_heatmap(student_id)
    chart = create_exam_heatmap_chart(heatmap, student.full_name)
    if chart:
        await update.message.reply_photo(photo=chart, caption="🗓 Экзамены по месяцам (* - вне программы)")

    chart = create_course_attendance_chart(attendance, student.full_name)
    if chart:
        await update.message.reply_photo(photo=chart, caption="📅 Посещаемость по курсам")

    report = create_student_report(
        student,
        fees,
        attendance,
        heatmap,
        journal.student_sequence_summary(student_id),
    )
    await update.message.reply_document(
        document=report,
        filename=f"student_{student.id}.xlsx",
        caption="📄 Отчёт по ученику",
    )
    logger.info("Карточка ученика %s отправлена в чат %s", student_id, update.effective_chat.id)

    return ConversationHandler.END


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Отмена ввода."""
    await update.message.reply_text("Отменено.")
    return ConversationHandler.END


def get_profile_conversation_handler() -> ConversationHandler:
    """Создать ConversationHandler для карточки ученика."""
    return ConversationHandler(
        entry_points=[
            CommandHandler("student", student_command),
        ],
        states={
            ProfileStates.WAITING_STUDENT_ID: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, student_id_received),
            ],
        },
        fallbacks=[
            CommandHandler("cancel", cancel),
        ],
    )
