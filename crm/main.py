"""
Главный модуль бота CRM репетиторского центра.
Точка входа и запуск бота.
"""

import logging
from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
)

from crm.config import BOT_TOKEN, LOG_LEVEL, LOGS_DIR
from crm.database import init_db
from crm.handlers import (
    get_overview_handlers,
    get_pipeline_handlers,
    get_profile_conversation_handler,
)

# Настройка логирования
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, LOG_LEVEL),
    handlers=[
        logging.FileHandler(LOGS_DIR / "crm.log", encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)


# === Обработчики команд ===
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик команды /start."""
    user = update.effective_user
    logger.info("Пользователь %s (%s) запустил бота", user.id, user.full_name)

    await update.message.reply_text(
        f"👋 Привет, {user.first_name}!\n\n"
        "Я помощник администратора центра.\n\n"
        "Команды:\n"
        "/leads - Воронка лидов\n"
        "/student &lt;ID&gt; - Карточка ученика и отчёт\n"
        "/exams - Экзамены по предметам за месяц\n"
        "/notifications - Новые уведомления\n"
        "/help - Справка",
        parse_mode="HTML",
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик команды /help."""
    help_text = (
        "📖 <b>Справка</b>\n\n"
        "<b>Воронка:</b>\n"
        "/leads - лиды по этапам; кнопка двигает лида на следующий этап,\n"
        "с этапа 'Ожидает оплаты' - активирует ученика.\n"
        "Активацию можно отменить в течение нескольких секунд.\n\n"
        "<b>Ученик:</b>\n"
        "/student &lt;ID&gt; - оплата, посещаемость, графики и отчёт в Excel\n\n"
        "<b>Обзор:</b>\n"
        "/exams [ГГГГ-ММ] - средний процент по предметам за месяц\n"
        "/notifications - непрочитанные уведомления"
    )

    await update.message.reply_text(help_text, parse_mode="HTML")


def main() -> None:
    """Запуск бота."""
    if not BOT_TOKEN:
        raise ValueError("BOT_TOKEN не найден в переменных окружения!")

    logger.info("Запуск бота...")

    # Инициализация базы данных
    logger.info("Инициализация базы данных...")
    init_db()
    logger.info("База данных готова!")

    # Создаем приложение
    application = Application.builder().token(BOT_TOKEN).build()

    # Регистрируем обработчики команд
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))

    application.add_handlers(get_pipeline_handlers())
    application.add_handler(get_profile_conversation_handler())
    application.add_handlers(get_overview_handlers())

    # Запускаем бота
    logger.info("Бот запущен и готов к работе!")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
