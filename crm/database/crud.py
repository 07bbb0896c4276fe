"""
CRUD операции для работы с базой данных.
"""

from typing import Any, Optional, List

from sqlalchemy.orm import Session
from sqlalchemy import select

from crm.database.models import StoredCollection, AuditLog, Notification


# === Collections ===

def get_collection(session: Session, key: str) -> Optional[StoredCollection]:
    """Получить коллекцию по ключу."""
    return session.execute(
        select(StoredCollection).where(StoredCollection.key == key)
    ).scalar_one_or_none()


def set_collection(session: Session, key: str, data: Any) -> StoredCollection:
    """Заменить коллекцию целиком (или создать)."""
    collection = get_collection(session, key)

    if collection:
        collection.data = data
    else:
        collection = StoredCollection(key=key, data=data)
        session.add(collection)

    session.commit()
    session.refresh(collection)
    return collection


# === Audit log ===

def add_audit_log(
    session: Session,
    user_name: str,
    action: str,
    details: str,
    entity_id: Optional[int] = None
) -> AuditLog:
    """Добавить запись в журнал действий."""
    log = AuditLog(user_name=user_name, action=action, details=details, entity_id=entity_id)
    session.add(log)
    session.commit()
    session.refresh(log)
    return log


def get_audit_logs(session: Session, entity_id: Optional[int] = None) -> List[AuditLog]:
    """Получить журнал действий (новые сверху), опционально по сущности."""
    query = select(AuditLog)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    result = session.execute(query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()))
    return list(result.scalars().all())


# === Notifications ===

def add_notification(session: Session, title: str, message: str, severity: str = "info") -> Notification:
    """Создать уведомление."""
    notification = Notification(title=title, message=message, severity=severity)
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def get_notifications(session: Session, unread_only: bool = False) -> List[Notification]:
    """Получить уведомления (новые сверху)."""
    query = select(Notification)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = session.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()))
    return list(result.scalars().all())


def mark_notifications_read(session: Session) -> int:
    """Отметить все уведомления прочитанными. Возвращает количество."""
    unread = get_notifications(session, unread_only=True)
    for notification in unread:
        notification.read = True
    session.commit()
    return len(unread)
