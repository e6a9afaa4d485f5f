from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.types import TypeDecorator

from sportshub.core.core import ensure_utc, now_utc
from sportshub.database import Base


class UTCDateTime(TypeDecorator):
    """DateTime que siempre entra y sale de la base de datos en UTC con zona."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)


class BaseModel(Base):
    __abstract__ = True
    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, onupdate=now_utc)
