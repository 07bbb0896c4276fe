"""
Обработчики обзоров: экзамены по предметам за месяц, уведомления операторам.
"""

import logging
import re
from telegram import Update
from telegram.ext import CommandHandler, ContextTypes

from crm.handlers.common import format_percentage, get_store_from_update
from crm.services import JournalService
from crm.utils.dates import month_key

logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

SEVERITY_ICONS = {
    "success": "✅",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
}


async def exams_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик команды /exams [YYYY-MM]."""
    journal = JournalService(get_store_from_update(update))
    month = context.args[0] if context.args else month_key(journal.today())

    if not MONTH_RE.match(month):
        await update.message.reply_text("❌ Месяц в формате ГГГГ-ММ, например 2024-03")
        return

    performance = journal.exam_overview(month)
    if not performance:
        await update.message.reply_text(f"📝 За {month} экзаменов нет.")
        return

    lines = [f"📝 <b>Экзамены за {month}</b>\n"]
    for item in performance:
        lines.append(f"• {item['subject']}: {format_percentage(item['avg_percent'])} ({item['count']})")

    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


async def notifications_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик команды /notifications: непрочитанные уведомления."""
    notifications = get_store_from_update(update).read_notifications()
    if not notifications:
        await update.message.reply_text("🔔 Новых уведомлений нет.")
        return

    lines = ["🔔 <b>Уведомления</b>\n"]
    for item in notifications:
        icon = SEVERITY_ICONS.get(item["severity"], "ℹ️")
        lines.append(f"{icon} <b>{item['title']}</b>: {item['message']}")

    logger.info("Показано уведомлений: %s", len(notifications))
    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


def get_overview_handlers() -> list:
    return [
        CommandHandler("exams", exams_command),
        CommandHandler("notifications", notifications_command),
    ]
