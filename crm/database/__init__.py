"""
Модуль базы данных.
Экспортирует основные компоненты для удобного импорта.
"""

from crm.database.connection import get_session, init_db, engine
from crm.database.models import Base, StoredCollection, AuditLog, Notification
from crm.database import crud

__all__ = [
    "get_session",
    "init_db",
    "engine",
    "Base",
    "StoredCollection",
    "AuditLog",
    "Notification",
    "crud",
]
