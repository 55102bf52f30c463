from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import relationship

from database import Base

SIGNUP_COMPLETE = "complete"


class Founder(Base):
    __tablename__ = "founders"

    id = Column(String(64), primary_key=True, index=True)
    company_name = Column(String(256), nullable=False)
    email = Column(String(256), unique=True, nullable=False)
    industry = Column(String(128), nullable=True)
    sector = Column(String(128), nullable=True)
    website = Column(String(512), nullable=True)
    team_size = Column(String(32), nullable=True)
    founded_date = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=True)
    # pre-signup | role-selected | complete
    signup_status = Column(String(32), nullable=False, default="pre-signup")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    documents = relationship(
        "FounderDocument",
        back_populates="founder",
        cascade="all, delete-orphan",
        order_by="FounderDocument.uploaded_at.desc()",
    )


class FounderDocument(Base):
    __tablename__ = "founder_documents"

    id = Column(String(64), primary_key=True, index=True)
    founder_id = Column(String(64), ForeignKey("founders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    url = Column(String(1024), nullable=True)
    content_type = Column(String(128), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    founder = relationship("Founder", back_populates="documents")
