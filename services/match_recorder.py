from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import MatchPersistenceError
from models import FounderInvestorMatch

logger = logging.getLogger(__name__)


async def record_matches(
    session: AsyncSession,
    funding_request_id: str,
    founder_id: str,
    investor_ids: list[str],
    assigned_by: str | None,
) -> list[FounderInvestorMatch]:
    """
    Insert one manual, active, delivery-pending match per investor not yet matched to
    the request, as a single batch inside a savepoint: either every row lands or none do.
    Returns the match rows for all given investors, existing ones included.
    """
    ids = list(dict.fromkeys(i for i in investor_ids if i))
    if not ids:
        return []

    existing_result = await session.execute(
        select(FounderInvestorMatch).where(
            FounderInvestorMatch.funding_request_id == funding_request_id,
            FounderInvestorMatch.investor_id.in_(ids),
        )
    )
    existing = {m.investor_id: m for m in existing_result.scalars().all()}

    now = datetime.now(timezone.utc)
    new_matches = [
        FounderInvestorMatch(
            id=f"match-{uuid.uuid4().hex[:12]}",
            funding_request_id=funding_request_id,
            founder_id=founder_id,
            investor_id=investor_id,
            assigned_by=assigned_by,
            assignment_method="manual",
            status="active",
            delivery_status="pending",
            contacted_at=now,
            created_at=now,
        )
        for investor_id in ids
        if investor_id not in existing
    ]

    if new_matches:
        try:
            async with session.begin_nested():
                session.add_all(new_matches)
        except SQLAlchemyError as exc:
            logger.error(
                "matches.record.failed",
                extra={"funding_request_id": funding_request_id, "count": len(new_matches), "error": str(exc)},
            )
            raise MatchPersistenceError(f"Failed to record investor matches: {exc}") from exc
        logger.info(
            "matches.record.persisted",
            extra={
                "funding_request_id": funding_request_id,
                "inserted": len(new_matches),
                "already_matched": len(existing),
            },
        )

    inserted = {m.investor_id: m for m in new_matches}
    return [existing.get(i) or inserted[i] for i in ids]


async def mark_delivery(
    session: AsyncSession,
    matches: list[FounderInvestorMatch],
    delivery_by_investor: dict[str, str],
    default: str = "skipped",
) -> None:
    """
    Tag match rows with how outreach went for their investor. Investors missing from
    delivery_by_investor get `default`, which never overwrites an earlier sent/failed.
    """
    now = datetime.now(timezone.utc)
    for match in matches:
        status = delivery_by_investor.get(match.investor_id)
        if status is None:
            if match.delivery_status != "pending":
                continue
            status = default
        match.delivery_status = status
        if status == "sent":
            match.email_sent_at = now
    await session.flush()


async def outreach_counts(session: AsyncSession, funding_request_id: str) -> tuple[int, int]:
    """(distinct investors contacted, emails sent) derived from delivered match rows."""
    result = await session.execute(
        select(
            func.count(func.distinct(FounderInvestorMatch.investor_id)),
            func.count(FounderInvestorMatch.id),
        ).where(
            FounderInvestorMatch.funding_request_id == funding_request_id,
            FounderInvestorMatch.delivery_status == "sent",
        )
    )
    contacted, sent = result.one()
    return int(contacted or 0), int(sent or 0)


async def outreach_counts_for(session: AsyncSession, funding_request_ids: list[str]) -> dict[str, tuple[int, int]]:
    if not funding_request_ids:
        return {}
    result = await session.execute(
        select(
            FounderInvestorMatch.funding_request_id,
            func.count(func.distinct(FounderInvestorMatch.investor_id)),
            func.count(FounderInvestorMatch.id),
        )
        .where(
            FounderInvestorMatch.funding_request_id.in_(funding_request_ids),
            FounderInvestorMatch.delivery_status == "sent",
        )
        .group_by(FounderInvestorMatch.funding_request_id)
    )
    return {row[0]: (int(row[1]), int(row[2])) for row in result.all()}
