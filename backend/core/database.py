"""
Подключение к базе данных и управление сессиями
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import DATABASE_URL, DB_ECHO
from core.errors import PersistenceError

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionFactory = Callable[[], Session]


def make_engine(url: str = DATABASE_URL):
    kwargs = {"pool_pre_ping": True, "echo": DB_ECHO}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory база живёт в одном соединении
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_recycle"] = 300
    return create_engine(url, **kwargs)


def make_session_factory(url: str = DATABASE_URL) -> sessionmaker:
    engine = make_engine(url)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


SessionLocal = make_session_factory()


def init_db(session_factory: sessionmaker = SessionLocal) -> None:
    """Создание таблиц (для локального запуска и тестов)"""
    # импорт регистрирует модели в Base.metadata
    import booking_service.tables  # noqa: F401

    Base.metadata.create_all(bind=session_factory.kw["bind"])
    logger.info("✅ Таблицы базы данных созданы")


@contextmanager
def session_scope(session_factory: SessionFactory) -> Iterator[Session]:
    """Одна транзакция: commit при успехе, rollback при любой ошибке.

    Ошибки SQLAlchemy превращаются в PersistenceError, доменные ошибки
    пробрасываются как есть.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"❌ Ошибка записи в базу: {e}")
        raise PersistenceError("Не удалось сохранить изменения") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
