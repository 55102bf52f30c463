from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.orm import relationship

from database import Base

FUNDING_STAGES = (
    "Pre-Seed",
    "Seed",
    "Series A",
    "Series B",
    "Series C",
    "Series D+",
    "Bridge/Convertible",
    "Growth/Late Stage",
)
FUNDING_REQUEST_STATUSES = ("open", "allotted", "closed")
ACTIVE_STATUSES = ("open", "allotted")

MATCH_STATUSES = ("active", "contacted", "interested", "declined", "funded")
# pending: recorded, not yet dispatched; skipped: outreach stopped before dispatch
DELIVERY_STATUSES = ("pending", "sent", "failed", "skipped")

_ACTIVE_WHERE = text("status IN ('open', 'allotted')")


class FundingRequest(Base):
    __tablename__ = "funding_requests"
    __table_args__ = (
        # At most one open/allotted request per founder, enforced on insert
        Index(
            "uq_funding_requests_one_active_per_founder",
            "founder_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
        Index("ix_funding_requests_status_created", "status", "created_at"),
    )

    id = Column(String(64), primary_key=True, index=True)
    founder_id = Column(String(64), ForeignKey("founders.id", ondelete="CASCADE"), nullable=False, index=True)
    funding_stage = Column(String(32), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    use_of_funds = Column(Text, nullable=False)
    business_plan = Column(Text, nullable=True)
    financial_projections = Column(Text, nullable=True)
    additional_notes = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="open")
    refresh_count = Column(Integer, nullable=False, default=0)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    allotted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    founder = relationship("Founder")
    matches = relationship("FounderInvestorMatch", back_populates="funding_request", cascade="all, delete-orphan")


class FounderInvestorMatch(Base):
    __tablename__ = "founder_investor_matches"
    __table_args__ = (
        UniqueConstraint("funding_request_id", "investor_id", name="uq_match_request_investor"),
    )

    id = Column(String(64), primary_key=True, index=True)
    funding_request_id = Column(
        String(64), ForeignKey("funding_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    founder_id = Column(String(64), ForeignKey("founders.id", ondelete="CASCADE"), nullable=False, index=True)
    investor_id = Column(String(64), ForeignKey("investors.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(String(64), nullable=True)
    assignment_method = Column(String(16), nullable=False, default="manual")
    status = Column(String(16), nullable=False, default="active")
    delivery_status = Column(String(16), nullable=False, default="pending")
    email_sent_at = Column(DateTime(timezone=True), nullable=True)
    contacted_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    funding_request = relationship("FundingRequest", back_populates="matches")
    investor = relationship("Investor")
