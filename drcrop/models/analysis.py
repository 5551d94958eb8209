from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from drcrop.database.connection import Base
from drcrop.models.user import _new_id, _utcnow


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    image_path = Column(Text, nullable=False)

    disease = Column(Text, nullable=False)
    severity = Column(String(16), nullable=False)
    severity_percent = Column(Integer, nullable=False)
    organic_diagnosis = Column(Text, nullable=False)
    chemical_diagnosis = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="analyses")
