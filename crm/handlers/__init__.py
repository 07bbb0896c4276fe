"""
Обработчики Telegram-бота.
"""

from crm.handlers.overview import get_overview_handlers
from crm.handlers.pipeline import get_pipeline_handlers
from crm.handlers.profile import get_profile_conversation_handler

__all__ = [
    "get_overview_handlers",
    "get_pipeline_handlers",
    "get_profile_conversation_handler",
]
