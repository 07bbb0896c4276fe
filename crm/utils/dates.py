"""
Работа с датами: "сегодня" в часовом поясе центра, разбор и формат дат, месяцы.
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from crm.config import TIMEZONE

# Сокращённые названия месяцев (как в ru-RU toLocaleString)
MONTHS_SHORT_RU = [
    "", "янв.", "февр.", "март", "апр.", "май", "июнь",
    "июль", "авг.", "сент.", "окт.", "нояб.", "дек."
]


def local_today() -> date:
    """Текущая дата в часовом поясе центра."""
    return datetime.now(ZoneInfo(TIMEZONE)).date()


def local_now_iso() -> str:
    """Текущий момент в ISO формате (для created_at / lastModifiedAt)."""
    return datetime.now(ZoneInfo(TIMEZONE)).isoformat(timespec="seconds")


def format_date(d: date) -> str:
    """Форматировать дату для отображения."""
    return d.strftime("%d.%m.%Y")


def parse_date(date_str: str) -> date | None:
    """Парсинг даты из строки."""
    date_str = date_str.strip()

    # Сначала пробуем ISO формат (YYYY-MM-DD), в т.ч. с временем
    if "-" in date_str and len(date_str) >= 10:
        try:
            return date.fromisoformat(date_str[:10])
        except ValueError:
            pass

    formats = ["%d.%m.%Y", "%d.%m.%y", "%d/%m/%Y", "%d-%m-%Y"]
    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    return None


def to_date(value) -> Optional[date]:
    """Привести значение из хранилища к date (None для пустых и нераспознанных)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(str(value))


def month_key(d: date) -> str:
    """Ключ месяца вида 2024-03."""
    return d.strftime("%Y-%m")


def month_label(key: str) -> str:
    """Подпись месяца по ключу 2024-03 -> 'март'."""
    return MONTHS_SHORT_RU[int(key[5:7])]
