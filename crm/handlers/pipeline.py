"""
Обработчики доски воронки: список лидов, продвижение, активация с отменой.
"""

import logging
from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError
from telegram.ext import (
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from crm.handlers.common import get_store_from_update
from crm.services import PipelineService
from crm.states import PIPELINE_ORDER, StudentStatus

logger = logging.getLogger(__name__)

SERVICE_KEY = "pipeline_service"
UNDO_MESSAGE_KEY = "undo_message_id"


# === Вспомогательные функции ===

def get_pipeline_service(update: Update, context: ContextTypes.DEFAULT_TYPE) -> PipelineService:
    """
    Сервис воронки этого чата (вместе с ним живёт буфер отмены).

    Хранилище и имя оператора берутся из каждого обновления: в групповом
    чате воронку двигают разные люди.
    """
    store = get_store_from_update(update)
    service = context.chat_data.get(SERVICE_KEY)
    if service is None:
        service = PipelineService(store, user_name=store.user_name)
        context.chat_data[SERVICE_KEY] = service
    else:
        service.store = store
        service.user_name = store.user_name
    return service


def get_board_keyboard(service: PipelineService) -> tuple[str, InlineKeyboardMarkup]:
    """Текст доски и кнопки 'следующий этап' по каждому лиду."""
    board = service.leads()
    lines = ["📋 <b>Воронка</b>\n"]
    keyboard = []

    for stage in PIPELINE_ORDER:
        students = board[stage]
        lines.append(f"<b>{stage.value}</b> ({len(students)})")
        for student in students:
            lines.append(f"  • {student.full_name}")
            action = "✅ Активировать" if stage == PIPELINE_ORDER[-1] else "➡️"
            keyboard.append([
                InlineKeyboardButton(
                    f"{action} {student.full_name}",
                    callback_data=f"pipe_adv_{student.id}"
                )
            ])

    if not keyboard:
        lines.append("\nЛидов нет.")

    keyboard.append([InlineKeyboardButton("🔄 Обновить", callback_data="pipe_board")])
    return "\n".join(lines), InlineKeyboardMarkup(keyboard)


def get_undo_keyboard(seconds: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(f"↩️ Отменить ({seconds})", callback_data="pipe_undo")],
        [InlineKeyboardButton("📋 К воронке", callback_data="pipe_board")],
    ])


# === Основные обработчики ===

async def leads_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик команды /leads."""
    service = get_pipeline_service(update, context)
    text, keyboard = get_board_keyboard(service)
    await update.message.reply_text(text, reply_markup=keyboard, parse_mode="HTML")


async def pipeline_board(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Перерисовать доску. Если это сообщение с отменой, отмена закрывается вместе с отсчётом."""
    query = update.callback_query
    await query.answer()

    service = get_pipeline_service(update, context)
    if context.chat_data.get(UNDO_MESSAGE_KEY) == query.message.message_id:
        service.undo_buffer.close()
        context.chat_data.pop(UNDO_MESSAGE_KEY, None)
    text, keyboard = get_board_keyboard(service)
    await query.edit_message_text(text=text, reply_markup=keyboard, parse_mode="HTML")


async def pipeline_advance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Следующий этап для лида; с последнего этапа - активация с кнопкой отмены."""
    query = update.callback_query

    student_id = int(query.data.split("_")[-1])
    service = get_pipeline_service(update, context)
    student = service.advance(student_id)

    if student is None:
        await query.answer("❌ Ученик не найден", show_alert=True)
        return
    await query.answer()

    if student.status != StudentStatus.ACTIVE:
        text, keyboard = get_board_keyboard(service)
        await query.edit_message_text(text=text, reply_markup=keyboard, parse_mode="HTML")
        return

    logger.info("Лид %s активирован в чате %s", student_id, update.effective_chat.id)
    await query.edit_message_text(
        text=f"✅ <b>{student.full_name}</b> переведён в активные ученики.",
        reply_markup=get_undo_keyboard(service.undo_buffer.remaining_seconds()),
        parse_mode="HTML",
    )

    job = context.job_queue.run_repeating(
        undo_countdown,
        interval=1,
        first=1,
        chat_id=update.effective_chat.id,
        data={"message_id": query.message.message_id, "name": student.full_name},
        name=f"undo_{update.effective_chat.id}",
    )
    service.undo_buffer.attach_timer(job.schedule_removal)
    context.chat_data[UNDO_MESSAGE_KEY] = query.message.message_id


async def undo_countdown(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Тик обратного отсчёта: обновить кнопку или убрать её по истечении срока."""
    job = context.job
    if context.chat_data.get(UNDO_MESSAGE_KEY) != job.data["message_id"]:
        # Сообщение уже показывает доску или другую отмену
        job.schedule_removal()
        return

    service = context.chat_data.get(SERVICE_KEY)
    remaining = service.undo_buffer.tick() if service else 0

    if remaining > 0:
        markup = get_undo_keyboard(remaining)
        text = None
    else:
        job.schedule_removal()
        context.chat_data.pop(UNDO_MESSAGE_KEY, None)
        markup = InlineKeyboardMarkup([[InlineKeyboardButton("📋 К воронке", callback_data="pipe_board")]])
        text = f"✅ <b>{job.data['name']}</b> переведён в активные ученики."

    try:
        if text is None:
            await context.bot.edit_message_reply_markup(
                chat_id=job.chat_id, message_id=job.data["message_id"], reply_markup=markup
            )
        else:
            await context.bot.edit_message_text(
                text=text, chat_id=job.chat_id, message_id=job.data["message_id"],
                reply_markup=markup, parse_mode="HTML"
            )
    except TelegramError as e:
        logger.warning("Не удалось обновить отсчёт отмены: %s", e)


async def pipeline_undo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Кнопка 'Отменить'. Работает только на сообщении с текущей отменой."""
    query = update.callback_query
    service = get_pipeline_service(update, context)

    if context.chat_data.get(UNDO_MESSAGE_KEY) != query.message.message_id or not service.undo():
        await query.answer("⏱ Время на отмену вышло", show_alert=True)
        return

    context.chat_data.pop(UNDO_MESSAGE_KEY, None)
    await query.answer("↩️ Активация отменена")
    text, keyboard = get_board_keyboard(service)
    await query.edit_message_text(text=text, reply_markup=keyboard, parse_mode="HTML")


def get_pipeline_handlers() -> list:
    """Обработчики воронки для регистрации в приложении."""
    return [
        CommandHandler("leads", leads_command),
        CallbackQueryHandler(pipeline_board, pattern="^pipe_board$"),
        CallbackQueryHandler(pipeline_advance, pattern=r"^pipe_adv_\d+$"),
        CallbackQueryHandler(pipeline_undo, pattern="^pipe_undo$"),
    ]
