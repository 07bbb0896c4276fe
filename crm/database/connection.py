"""
Движок и сессии SQLAlchemy для хранилища CRM.

По умолчанию база - файл SQLite в data/, но DATABASE_URL может указывать
на любую СУБД, которую поддерживает SQLAlchemy.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from crm.config import DATABASE_URL


def engine_options(url: str) -> dict:
    """Параметры create_engine для URL базы."""
    options = {"echo": False}
    if url.startswith("sqlite"):
        # Бот обращается к базе из потоков job queue
        options["connect_args"] = {"check_same_thread": False}
    return options


def make_engine(url: str = DATABASE_URL) -> Engine:
    return create_engine(url, **engine_options(url))


engine = make_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session() -> Session:
    """Новая сессия; закрывает вызывающий."""
    return SessionLocal()


def init_db(bind: Engine = engine) -> None:
    """Создать таблицы коллекций, журнала действий и уведомлений."""
    from crm.database.models import Base
    Base.metadata.create_all(bind=bind)
