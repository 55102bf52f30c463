from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NoContactableInvestors, NoValidInvestors
from models import Investor

logger = logging.getLogger(__name__)


@dataclass
class ResolvedInvestors:
    found: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContactableInvestor:
    id: str
    email: str
    full_name: str | None = None


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


async def resolve_investors(session: AsyncSession, investor_ids: list[str]) -> ResolvedInvestors:
    """Split ids into those present in the investor directory and those that are not, keeping caller order."""
    ids = _dedupe(investor_ids)
    if not ids:
        return ResolvedInvestors()
    result = await session.execute(select(Investor.id).where(Investor.id.in_(ids)))
    existing = set(result.scalars().all())
    resolved = ResolvedInvestors(
        found=[i for i in ids if i in existing],
        missing=[i for i in ids if i not in existing],
    )
    if resolved.missing:
        logger.warning(
            "investors.resolve.missing",
            extra={"missing": resolved.missing, "found_count": len(resolved.found)},
        )
    return resolved


async def get_contactable_investors(session: AsyncSession, investor_ids: list[str]) -> list[ContactableInvestor]:
    """Investors with a non-empty, verified email address."""
    ids = _dedupe(investor_ids)
    if not ids:
        return []
    result = await session.execute(
        select(Investor).where(
            Investor.id.in_(ids),
            Investor.email.is_not(None),
            Investor.email != "",
            Investor.email_verified.is_(True),
        )
    )
    by_id = {inv.id: inv for inv in result.scalars().all()}
    return [
        ContactableInvestor(id=i, email=by_id[i].email.strip().lower(), full_name=by_id[i].full_name)
        for i in ids
        if i in by_id
    ]


def require_found(resolved: ResolvedInvestors) -> list[str]:
    if not resolved.found:
        raise NoValidInvestors()
    return resolved.found


def require_contactable(contactable: list[ContactableInvestor]) -> list[ContactableInvestor]:
    if not contactable:
        raise NoContactableInvestors()
    return contactable
