import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from drcrop.database.connection import Base


def _utcnow():
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(150), unique=True, index=True, nullable=False)
    password = Column(String(128), nullable=False)  # bcrypt hash
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    analyses = relationship(
        "Analysis",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
