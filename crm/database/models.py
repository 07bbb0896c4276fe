"""
Модели базы данных SQLAlchemy.

Схема:
- StoredCollection: коллекция целиком (ученики, группы, курсы, журнал...) как JSON-документ по ключу
- AuditLog: журнал действий операторов (привязан к сущности, если есть)
- Notification: уведомления для операторов
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, String, DateTime, Boolean, JSON, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Базовый класс для всех моделей."""
    pass


class StoredCollection(Base):
    """Коллекция данных, хранимая целиком под одним ключом."""
    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    data: Mapped[Any] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"StoredCollection(key={self.key!r}, updated_at={self.updated_at})"


class AuditLog(Base):
    """Запись журнала действий."""
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_name: Mapped[str] = mapped_column(String(200))
    action: Mapped[str] = mapped_column(String(200))
    details: Mapped[str] = mapped_column(Text, default="")
    entity_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"AuditLog(action={self.action!r}, entity_id={self.entity_id})"


class Notification(Base):
    """Уведомление для оператора."""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String(20), default="info")
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"Notification(severity={self.severity!r}, title={self.title!r})"
