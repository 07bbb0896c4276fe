"""
Общие вспомогательные функции обработчиков.
"""

from telegram import Update

from crm.config import COMPANY_USER
from crm.store import DatabaseStore


def get_store_from_update(update: Update) -> DatabaseStore:
    """Хранилище с именем оператора для журнала действий."""
    user = update.effective_user
    return DatabaseStore(user_name=user.full_name if user else COMPANY_USER)


def format_money(amount: int) -> str:
    """Форматирование суммы: 12 500 с."""
    return f"{amount:,}".replace(",", " ") + " с."


def format_percentage(pct: float) -> str:
    """Форматирование процента с эмодзи."""
    if pct >= 80:
        return f"🟢 {pct:.0f}%"
    elif pct >= 60:
        return f"🟡 {pct:.0f}%"
    elif pct >= 40:
        return f"🟠 {pct:.0f}%"
    else:
        return f"🔴 {pct:.0f}%"
