from sqlalchemy import JSON, Boolean, Column, DateTime, String, func

from database import Base


class Investor(Base):
    __tablename__ = "investors"

    id = Column(String(64), primary_key=True, index=True)
    full_name = Column(String(256), nullable=False)
    email = Column(String(256), nullable=True, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    company = Column(String(256), nullable=True)
    location = Column(String(256), nullable=True)
    investment_interests = Column(JSON, nullable=True)
    amount_range = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
