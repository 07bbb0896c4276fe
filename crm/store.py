"""
Хранилище снимков данных.

Ядро работает только через интерфейс SnapshotStore:
- get(key, default) - текущая коллекция целиком
- set(key, value) - замена коллекции целиком (никаких частичных патчей)
- notify(message, severity) / log_action(action, details, entity_id) - побочные каналы

Реализации:
- MemoryStore - в памяти процесса (тесты, скрипты)
- DatabaseStore - SQLAlchemy, одна JSON-строка на ключ
"""

import copy
import logging
from typing import Any, Callable, Iterable, Optional, TypeVar

from sqlalchemy.orm import Session

from crm.database import get_session, crud
from crm.states import Severity

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORAGE_PREFIX = "repetitor_"


class StorageKeys:
    """Ключи коллекций в хранилище."""
    STUDENTS = f"{STORAGE_PREFIX}students"
    GROUPS = f"{STORAGE_PREFIX}groups"
    COURSES = f"{STORAGE_PREFIX}courses"
    TRANSACTIONS = f"{STORAGE_PREFIX}transactions"
    INVOICES = f"{STORAGE_PREFIX}invoices"
    EXAM_RESULTS = f"{STORAGE_PREFIX}exam_results"
    ATTENDANCE = f"{STORAGE_PREFIX}attendance"


DEFAULT_TITLES = {
    Severity.SUCCESS: "Успешно",
    Severity.ERROR: "Ошибка",
    Severity.WARNING: "Внимание",
    Severity.INFO: "Инфо",
}


class SnapshotStore:
    """Интерфейс хранилища снимков."""

    def get(self, key: str, default: T) -> T:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def notify(self, message: str, severity: Severity = Severity.INFO, title: Optional[str] = None) -> None:
        raise NotImplementedError

    def log_action(self, action: str, details: str, entity_id: Optional[int] = None) -> None:
        raise NotImplementedError

    def audit_history(self, entity_id: int) -> list[dict]:
        """История действий по сущности (новые сверху)."""
        return []


class MemoryStore(SnapshotStore):
    """Хранилище в памяти. Отдаёт и принимает копии, чтобы снимки не разделяли состояние."""

    def __init__(self, initial: Optional[dict] = None, user_name: str = "system"):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})
        self.user_name = user_name
        self.notifications: list[dict] = []
        self.audit_logs: list[dict] = []

    def get(self, key: str, default: T) -> T:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def notify(self, message: str, severity: Severity = Severity.INFO, title: Optional[str] = None) -> None:
        severity = Severity(severity)
        self.notifications.insert(0, {
            "title": title or DEFAULT_TITLES[severity],
            "message": message,
            "severity": severity.value,
        })

    def log_action(self, action: str, details: str, entity_id: Optional[int] = None) -> None:
        self.audit_logs.insert(0, {
            "userName": self.user_name,
            "action": action,
            "details": details,
            "entityId": entity_id,
        })

    def audit_history(self, entity_id: int) -> list[dict]:
        return [copy.deepcopy(log) for log in self.audit_logs if log["entityId"] == entity_id]


class DatabaseStore(SnapshotStore):
    """Хранилище поверх SQLAlchemy: каждая операция в своей сессии."""

    def __init__(self, session_factory: Callable[[], Session] = get_session, user_name: str = "system"):
        self.session_factory = session_factory
        self.user_name = user_name

    def get(self, key: str, default: T) -> T:
        session = self.session_factory()
        try:
            collection = crud.get_collection(session, key)
            if collection is None or collection.data is None:
                return default
            return copy.deepcopy(collection.data)
        finally:
            session.close()

    def set(self, key: str, value: Any) -> None:
        session = self.session_factory()
        try:
            crud.set_collection(session, key, value)
        finally:
            session.close()

    def notify(self, message: str, severity: Severity = Severity.INFO, title: Optional[str] = None) -> None:
        severity = Severity(severity)
        session = self.session_factory()
        try:
            crud.add_notification(session, title or DEFAULT_TITLES[severity], message, severity.value)
        finally:
            session.close()

    def log_action(self, action: str, details: str, entity_id: Optional[int] = None) -> None:
        session = self.session_factory()
        try:
            crud.add_audit_log(session, self.user_name, action, details, entity_id)
        finally:
            session.close()

    def audit_history(self, entity_id: int) -> list[dict]:
        """История действий по сущности (новые сверху)."""
        session = self.session_factory()
        try:
            return [
                {
                    "userName": log.user_name,
                    "action": log.action,
                    "details": log.details,
                    "entityId": log.entity_id,
                    "timestamp": log.timestamp.isoformat(timespec="seconds"),
                }
                for log in crud.get_audit_logs(session, entity_id)
            ]
        finally:
            session.close()

    def read_notifications(self) -> list[dict]:
        """Непрочитанные уведомления (новые сверху); после чтения отмечаются прочитанными."""
        session = self.session_factory()
        try:
            unread = [
                {
                    "title": notification.title,
                    "message": notification.message,
                    "severity": notification.severity,
                }
                for notification in crud.get_notifications(session, unread_only=True)
            ]
            crud.mark_notifications_read(session)
            return unread
        finally:
            session.close()


# === Загрузка / сохранение сущностей ===

def load_entities(store: SnapshotStore, key: str, entity_cls) -> list:
    """Прочитать коллекцию и превратить документы в сущности."""
    return [entity_cls.from_dict(item) for item in store.get(key, [])]


def save_entities(store: SnapshotStore, key: str, entities: Iterable) -> None:
    """Сохранить коллекцию сущностей целиком."""
    store.set(key, [entity.to_dict() for entity in entities])
