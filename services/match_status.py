from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from errors import NotFound, ValidationFailure
from models import FounderInvestorMatch
from services.funding_requests import ADMIN_ROLE, match_to_dict

logger = logging.getLogger(__name__)

# Forward moves a founder can make on a match, plus allowed reverts
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "active": ("contacted", "declined"),
    "contacted": ("interested", "declined", "active"),
    "interested": ("funded", "declined", "contacted"),
    "declined": ("active", "contacted"),
    "funded": (),
}


def allowed_transitions(current: str) -> tuple[str, ...]:
    return TRANSITIONS.get(current, ())


async def update_match_status(
    session: AsyncSession,
    match_id: str,
    caller_id: str,
    caller_role: str,
    status: str,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    query = (
        select(FounderInvestorMatch)
        .options(selectinload(FounderInvestorMatch.investor))
        .where(FounderInvestorMatch.id == match_id)
    )
    if caller_role != ADMIN_ROLE:
        query = query.where(FounderInvestorMatch.founder_id == caller_id)
    match = (await session.execute(query)).scalar_one_or_none()
    if match is None:
        raise NotFound("Match not found or access denied")

    previous = match.status
    if status == previous:
        if notes is None:
            raise ValidationFailure(f"Match is already {status}")
        match.notes = notes
        await session.flush()
        return {"message": "Match notes updated successfully", "data": {"match": match_to_dict(match)}}

    allowed = allowed_transitions(previous)
    if status not in allowed:
        detail = ", ".join(allowed) if allowed else "none (final status)"
        raise ValidationFailure(f"Cannot change match status from {previous} to {status}. Allowed: {detail}")

    match.status = status
    if notes is not None:
        match.notes = notes
    await session.flush()
    logger.info(
        "matches.status_updated",
        extra={"match_id": match.id, "from_status": previous, "to_status": status, "by": caller_id},
    )
    return {
        "message": f"Match status updated from {previous} to {status}",
        "data": {"match": match_to_dict(match), "previousStatus": previous},
    }
