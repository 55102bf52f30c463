"""
Chooses which pitch deck documents go out with investor outreach.

Tiers are tried in order and each only when the previous one produced nothing:
  1. explicit  - the founder's documents whose id was asked for
  2. verified  - every verified document (only when verified ones are preferred)
  3. all       - every document the founder has, possibly none

A tier that fails to load documents is recorded on its TierOutcome and treated as
empty so the next tier still runs. Only when every tier failed and the founder does
not exist is FounderNotFound raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AppError, FounderNotFound
from models import Founder, FounderDocument

logger = logging.getLogger(__name__)

TIER_EXPLICIT = "explicit"
TIER_VERIFIED = "verified"
TIER_ALL = "all"


@dataclass
class TierOutcome:
    tier: str
    documents: list[FounderDocument] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class DocumentSelection:
    documents: list[FounderDocument] = field(default_factory=list)
    tier: Optional[str] = None
    attempts: list[TierOutcome] = field(default_factory=list)

    @property
    def document_ids(self) -> list[str]:
        return [d.id for d in self.documents]

    def summary(self) -> dict:
        return {
            "tier": self.tier,
            "documentCount": len(self.documents),
            "attempts": [
                {"tier": a.tier, "documentCount": len(a.documents), "error": a.error} for a in self.attempts
            ],
        }


async def load_founder_documents(session: AsyncSession, founder_id: str) -> list[FounderDocument]:
    """All of a founder's documents, newest upload first."""
    exists = await session.scalar(select(Founder.id).where(Founder.id == founder_id))
    if exists is None:
        raise FounderNotFound()
    result = await session.execute(
        select(FounderDocument)
        .where(FounderDocument.founder_id == founder_id)
        .order_by(FounderDocument.uploaded_at.desc(), FounderDocument.id)
    )
    return list(result.scalars().all())


class _DocumentCache:
    """One load per selection; a failed load is retried by the next tier."""

    def __init__(self, session: AsyncSession, founder_id: str) -> None:
        self.session = session
        self.founder_id = founder_id
        self.documents: list[FounderDocument] | None = None

    async def get(self) -> list[FounderDocument]:
        if self.documents is None:
            self.documents = await load_founder_documents(self.session, self.founder_id)
        return self.documents


async def _run_tier(
    cache: _DocumentCache,
    tier: str,
    keep: Callable[[FounderDocument], bool],
) -> TierOutcome:
    try:
        documents = await cache.get()
    except (AppError, SQLAlchemyError) as exc:
        logger.warning(
            "documents.select.tier_failed",
            extra={"founder_id": cache.founder_id, "tier": tier, "error": str(exc)},
        )
        return TierOutcome(tier=tier, error=str(exc))
    return TierOutcome(tier=tier, documents=[d for d in documents if keep(d)])


async def select_documents(
    session: AsyncSession,
    founder_id: str,
    explicit_ids: list[str] | None = None,
    prefer_verified: bool = True,
) -> DocumentSelection:
    if not founder_id:
        raise ValueError("founder_id is required")

    wanted = set(explicit_ids or [])
    tiers: list[tuple[str, Callable[[FounderDocument], bool]]] = []
    if wanted:
        tiers.append((TIER_EXPLICIT, lambda d: d.id in wanted))
    if prefer_verified:
        tiers.append((TIER_VERIFIED, lambda d: bool(d.is_verified)))
    tiers.append((TIER_ALL, lambda d: True))

    cache = _DocumentCache(session, founder_id)
    selection = DocumentSelection()
    for tier, keep in tiers:
        outcome = await _run_tier(cache, tier, keep)
        selection.attempts.append(outcome)
        if outcome.documents:
            selection.documents = outcome.documents
            selection.tier = tier
            return selection

    if all(a.failed for a in selection.attempts):
        exists = await session.scalar(select(Founder.id).where(Founder.id == founder_id))
        if exists is None:
            raise FounderNotFound()
    return selection
