from sqlalchemy import Column, String, DateTime, Integer, Text
from datetime import datetime, timezone
from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class KVEntry(Base):
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)
    revision = Column(Integer, nullable=False, default=1)  # bumped on every write
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
