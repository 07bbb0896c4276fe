"""
Конфигурация CRM.
Загрузка переменных окружения из .env файла.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Загружаем переменные окружения из .env
load_dotenv()

# Токен бота (проверяется при запуске бота, см. crm.main)
BOT_TOKEN = os.getenv("BOT_TOKEN")

# Путь к базе данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/crm.db")

# Часовой пояс (определяет "сегодня" для дат статусов)
TIMEZONE = os.getenv("TIMEZONE", "Asia/Dushanbe")

# Уровень логирования
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Сколько секунд доступна отмена действия
UNDO_TIMEOUT_SECONDS = int(os.getenv("UNDO_TIMEOUT_SECONDS", "5"))

# Имя, под которым изменения попадают в журнал действий
COMPANY_USER = os.getenv("COMPANY_USER", "Администратор")


# Путь к директории с данными
DATA_DIR = Path("data")
DATA_DIR.mkdir(exist_ok=True)

# Путь к директории с логами
LOGS_DIR = Path("logs")
LOGS_DIR.mkdir(exist_ok=True)
