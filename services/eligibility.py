"""
Gate for creating a funding request: the founder must exist, have finished
signup, and hold no open or allotted request. Read-only.
"""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ConflictingActiveRequest, NotEligible
from models import Founder, FundingRequest
from models.founder import SIGNUP_COMPLETE
from models.funding_request import ACTIVE_STATUSES


async def find_active_request(session: AsyncSession, founder_id: str) -> FundingRequest | None:
    result = await session.execute(
        select(FundingRequest)
        .where(FundingRequest.founder_id == founder_id, FundingRequest.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def check_eligibility(session: AsyncSession, founder_id: str) -> Founder:
    """Return the founder profile if a new funding request may be created for it."""
    founder = await session.get(Founder, founder_id)
    if founder is None:
        raise NotEligible("Founder profile not found")
    if founder.signup_status != SIGNUP_COMPLETE:
        raise NotEligible("Please complete your profile before creating funding requests")
    if await find_active_request(session, founder_id) is not None:
        raise ConflictingActiveRequest()
    return founder
