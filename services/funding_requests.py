"""
Funding request creation and investor outreach.

create_funding_request commits the new request before any outreach happens. From
that point on nothing may hide or undo it: every outreach problem (no valid or
contactable investors, no documents, match persistence errors, dispatcher errors)
ends up as a non-success OutreachOutcome in the response, next to the created request.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from errors import (
    AccessDenied,
    AppError,
    ConflictingActiveRequest,
    MatchPersistenceError,
    NoDocumentsAvailable,
    NotFound,
    PersistenceFailure,
    ResolutionFailure,
    ValidationFailure,
)
from models import Founder, FounderInvestorMatch, FundingRequest
from schemas.funding_request import FundingRequestCreate
from schemas.outreach import OutreachOutcome, StepOutcome
from services.document_selector import select_documents
from services.eligibility import check_eligibility, find_active_request
from services.investor_resolver import (
    ContactableInvestor,
    get_contactable_investors,
    require_contactable,
    require_found,
    resolve_investors,
)
from services.match_recorder import mark_delivery, outreach_counts, outreach_counts_for, record_matches
from services.outreach import OutreachDispatcher, OutreachRequest, log_outreach_activity
from utils.case import dict_keys_to_camel

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
STATUS_PRIORITY = {"open": 1, "allotted": 2, "closed": 3}


def funding_request_to_dict(
    funding_request: FundingRequest,
    founder: Founder | None,
    counts: tuple[int, int],
) -> dict[str, Any]:
    """Public fields of a funding request with camelCase keys."""
    contacted, sent = counts
    return dict_keys_to_camel({
        "id": funding_request.id,
        "funding_stage": funding_request.funding_stage,
        "currency": funding_request.currency,
        "use_of_funds": funding_request.use_of_funds,
        "status": funding_request.status,
        "refresh_count": funding_request.refresh_count,
        "created_at": funding_request.created_at.isoformat() if funding_request.created_at else None,
        "founder": founder_summary(founder) if founder else None,
        "contacted_investors_count": contacted,
        "total_emails_sent": sent,
    })


def founder_summary(founder: Founder) -> dict[str, Any]:
    return {
        "id": founder.id,
        "company_name": founder.company_name,
        "industry": founder.industry,
        "sector": founder.sector,
        "founded_date": founder.founded_date.isoformat() if founder.founded_date else None,
        "team_size": founder.team_size,
        "website": founder.website,
    }


def match_to_dict(match: FounderInvestorMatch) -> dict[str, Any]:
    investor = match.investor
    return dict_keys_to_camel({
        "id": match.id,
        "investor_id": match.investor_id,
        "investor": {
            "full_name": investor.full_name,
            "company": investor.company,
        } if investor else None,
        "assigned_by": match.assigned_by,
        "assignment_method": match.assignment_method,
        "status": match.status,
        "delivery_status": match.delivery_status,
        "contacted_at": match.contacted_at.isoformat() if match.contacted_at else None,
        "email_sent_at": match.email_sent_at.isoformat() if match.email_sent_at else None,
        "notes": match.notes,
    })


def _failed_outcome(error: AppError | str, steps: list[StepOutcome], **extra: Any) -> OutreachOutcome:
    message = error.message if isinstance(error, AppError) else error
    data: dict[str, Any] = {"error": message, "steps": [s.model_dump() for s in steps], **extra}
    if isinstance(error, AppError):
        data["code"] = error.code
    return OutreachOutcome(success=False, message=message, data=data)


def _delivery_by_investor(outcome: OutreachOutcome, recipients: list[ContactableInvestor]) -> dict[str, str]:
    """Per-investor delivery status; recipients without a reported result count as failed."""
    by_email = {r.email: r.id for r in recipients}
    delivery = {r.id: "failed" for r in recipients}
    for result in (outcome.data or {}).get("results", []):
        investor_id = result.get("investorId") or by_email.get((result.get("email") or "").lower())
        if investor_id:
            delivery[investor_id] = "sent" if result.get("status") == "success" else "failed"
    return delivery


class FundingRequestOrchestrator:
    def __init__(self, session: AsyncSession, dispatcher: OutreachDispatcher) -> None:
        self.session = session
        self.dispatcher = dispatcher

    async def create_funding_request(
        self,
        founder_id: str,
        body: FundingRequestCreate,
        assigned_by: Optional[str] = None,
    ) -> dict[str, Any]:
        founder = await check_eligibility(self.session, founder_id)
        funding_request = await self._insert_open_request(founder_id, body)
        logger.info(
            "funding_request.created",
            extra={"funding_request_id": funding_request.id, "founder_id": founder_id},
        )

        email_results: OutreachOutcome | None = None
        if body.send_to_investors_immediately and body.investor_ids:
            default_message = (
                f"New funding request created: {founder.company_name} "
                f"seeking {body.funding_stage} stage funding."
            )
            email_results = await self.run_outreach(
                funding_request,
                founder,
                investor_ids=body.investor_ids,
                message=body.custom_email_message or default_message,
                document_ids=body.specified_pitch_deck_document_ids,
                assigned_by=assigned_by,
            )

        counts = await outreach_counts(self.session, funding_request.id)
        response: dict[str, Any] = {
            "message": "Funding request created successfully",
            "data": {"fundingRequest": funding_request_to_dict(funding_request, founder, counts)},
        }
        if email_results is not None:
            response["data"]["emailResults"] = email_results.model_dump()
        return response

    async def _insert_open_request(self, founder_id: str, body: FundingRequestCreate) -> FundingRequest:
        """Constrained insert plus commit: a second active request for the founder fails here."""
        now = datetime.now(timezone.utc)
        funding_request = FundingRequest(
            id=f"fr-{uuid.uuid4().hex[:12]}",
            founder_id=founder_id,
            funding_stage=body.funding_stage,
            use_of_funds=body.use_of_funds,
            business_plan=body.business_plan,
            financial_projections=body.financial_projections,
            additional_notes=body.additional_notes,
            status="open",
            refresh_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(funding_request)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("funding_request.conflict", extra={"founder_id": founder_id})
            raise ConflictingActiveRequest() from exc
        except OperationalError as exc:
            # busy/locked: another writer held the database past the timeout
            await self.session.rollback()
            if await self._has_active_request(founder_id):
                logger.warning("funding_request.conflict", extra={"founder_id": founder_id, "error": str(exc)})
                raise ConflictingActiveRequest() from exc
            raise PersistenceFailure(f"Failed to create funding request: {exc}") from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceFailure(f"Failed to create funding request: {exc}") from exc
        return funding_request

    async def _has_active_request(self, founder_id: str) -> bool:
        try:
            return await find_active_request(self.session, founder_id) is not None
        except SQLAlchemyError:
            return False
        finally:
            await self.session.rollback()

    async def run_outreach(
        self,
        funding_request: FundingRequest,
        founder: Founder,
        *,
        investor_ids: list[str],
        message: str,
        document_ids: list[str],
        assigned_by: Optional[str],
    ) -> OutreachOutcome:
        """Resolve, record, select and dispatch once. Always returns an outcome."""
        steps: list[StepOutcome] = []
        matches: list[FounderInvestorMatch] = []
        try:
            resolved = await resolve_investors(self.session, investor_ids)
            steps.append(StepOutcome(
                step="resolve_investors",
                ok=bool(resolved.found),
                detail=f"{len(resolved.found)} found, {len(resolved.missing)} missing",
            ))
            found = require_found(resolved)

            matches = await record_matches(
                self.session, funding_request.id, funding_request.founder_id, found, assigned_by
            )
            steps.append(StepOutcome(step="record_matches", ok=True, detail=f"{len(matches)} matched"))

            contactable = await get_contactable_investors(self.session, found)
            steps.append(StepOutcome(
                step="contactable_investors", ok=bool(contactable), detail=f"{len(contactable)} contactable"
            ))
            require_contactable(contactable)
            logger.info(
                "outreach.recipients",
                extra={
                    "funding_request_id": funding_request.id,
                    "contactable": len(contactable),
                    "requested": len(investor_ids),
                },
            )

            selection = await select_documents(self.session, funding_request.founder_id, document_ids, True)
            steps.append(StepOutcome(
                step="select_documents",
                ok=bool(selection.documents),
                detail=f"{len(selection.documents)} from tier {selection.tier or 'none'}",
            ))
            if not selection.documents:
                logger.warning("outreach.no_documents", extra={"funding_request_id": funding_request.id})
                raise NoDocumentsAvailable()

            # Pending rows are durable before any network I/O; no transaction stays open during dispatch
            try:
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self._rollback_keeping(funding_request, founder)
                matches = []
                raise MatchPersistenceError(f"Failed to record investor matches: {exc}") from exc
        except (ResolutionFailure, ValidationFailure, PersistenceFailure) as exc:
            await self._tag_skipped(matches, funding_request, founder)
            return _failed_outcome(exc, steps)
        except Exception as exc:
            logger.exception("outreach.prepare_error", extra={"funding_request_id": funding_request.id})
            await self._rollback_keeping(funding_request, founder)
            return _failed_outcome(f"Failed to prepare outreach: {exc}", steps)

        request = OutreachRequest(
            founder=founder,
            recipients=contactable,
            document_ids=selection.document_ids,
            message=message,
            funding_request_id=funding_request.id,
            documents=selection.documents,
        )
        try:
            outcome = await self.dispatcher.dispatch(request)
        except Exception as exc:
            logger.exception("outreach.dispatch_error", extra={"funding_request_id": funding_request.id})
            steps.append(StepOutcome(step="dispatch", ok=False, detail=str(exc)))
            outcome = _failed_outcome(f"Failed to send pitch deck: {exc}", steps)
        else:
            steps.append(StepOutcome(step="dispatch", ok=outcome.success, detail=outcome.message))
            outcome.data = {**(outcome.data or {}), "steps": [s.model_dump() for s in steps]}
        outcome.data["documents"] = selection.summary()
        log_outreach_activity(founder, contactable, outcome)

        try:
            await mark_delivery(self.session, matches, _delivery_by_investor(outcome, contactable))
            await self.session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "matches.delivery_update_failed",
                extra={"funding_request_id": funding_request.id, "error": str(exc)},
            )
            await self._rollback_keeping(funding_request, founder)
            outcome.data["deliveryTracking"] = f"Failed to update match delivery status: {exc}"
        return outcome

    async def _tag_skipped(
        self,
        matches: list[FounderInvestorMatch],
        funding_request: FundingRequest,
        founder: Founder,
    ) -> None:
        if not matches:
            return
        try:
            await mark_delivery(self.session, matches, {}, default="skipped")
            await self.session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "matches.delivery_update_failed",
                extra={"funding_request_id": funding_request.id, "error": str(exc)},
            )
            await self._rollback_keeping(funding_request, founder)

    async def _rollback_keeping(self, *instances: Any) -> None:
        """Roll back uncommitted outreach writes and reload the already-committed rows."""
        await self.session.rollback()
        for instance in instances:
            await self.session.refresh(instance)

    async def send_to_investors(
        self,
        funding_request_id: str,
        caller_id: str,
        caller_role: str,
        investor_ids: list[str],
        custom_message: Optional[str] = None,
        document_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        funding_request = await load_owned_request(self.session, funding_request_id, caller_id, caller_role)
        if funding_request.status == "closed":
            raise ValidationFailure("Cannot send a closed funding request to investors")
        founder = funding_request.founder
        default_message = (
            f"We would like to share our funding opportunity with you. {founder.company_name} "
            f"is seeking {funding_request.funding_stage} stage funding."
        )
        outcome = await self.run_outreach(
            funding_request,
            founder,
            investor_ids=investor_ids,
            message=custom_message or default_message,
            document_ids=document_ids or [],
            assigned_by=caller_id,
        )
        contacted, sent = await outreach_counts(self.session, funding_request.id)
        return {
            "message": "Successfully sent pitch deck to investors" if outcome.success else "Failed to send emails",
            "data": {
                "fundingRequestId": funding_request.id,
                "fundingStage": funding_request.funding_stage,
                "companyName": founder.company_name,
                "contactedInvestorsCount": contacted,
                "totalEmailsSent": sent,
                "emailResults": outcome.model_dump(),
            },
        }


async def load_owned_request(
    session: AsyncSession,
    funding_request_id: str,
    caller_id: str,
    caller_role: str,
) -> FundingRequest:
    result = await session.execute(
        select(FundingRequest)
        .options(selectinload(FundingRequest.founder))
        .where(FundingRequest.id == funding_request_id)
    )
    funding_request = result.scalar_one_or_none()
    if funding_request is None:
        raise NotFound("Funding request not found")
    if caller_role != ADMIN_ROLE and funding_request.founder_id != caller_id:
        raise AccessDenied("You do not have permission to access this funding request")
    return funding_request


async def get_funding_request(
    session: AsyncSession,
    funding_request_id: str,
    caller_id: str,
    caller_role: str,
) -> dict[str, Any]:
    funding_request = await load_owned_request(session, funding_request_id, caller_id, caller_role)
    result = await session.execute(
        select(FounderInvestorMatch)
        .options(selectinload(FounderInvestorMatch.investor))
        .where(FounderInvestorMatch.funding_request_id == funding_request.id)
        .order_by(FounderInvestorMatch.created_at)
    )
    matches = result.scalars().all()
    counts = await outreach_counts(session, funding_request.id)
    data = funding_request_to_dict(funding_request, funding_request.founder, counts)
    data.update({
        "businessPlan": funding_request.business_plan,
        "financialProjections": funding_request.financial_projections,
        "additionalNotes": funding_request.additional_notes,
        "updatedAt": funding_request.updated_at.isoformat() if funding_request.updated_at else None,
        "matches": [match_to_dict(m) for m in matches],
    })
    return data


async def list_funding_requests(
    session: AsyncSession,
    caller_id: str,
    caller_role: str,
    *,
    status: Optional[str] = None,
    funding_stage: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict[str, Any]:
    """Open first, then allotted, then closed; newest first within a status."""
    if page < 1:
        raise ValidationFailure("Page number must be greater than 0")
    if limit < 1 or limit > 100:
        raise ValidationFailure("Limit must be between 1 and 100")

    filters = []
    if caller_role != ADMIN_ROLE:
        filters.append(FundingRequest.founder_id == caller_id)
    if status and status != "all":
        if status not in STATUS_PRIORITY:
            raise ValidationFailure("Invalid status. Must be: open, allotted, closed, or all")
        filters.append(FundingRequest.status == status)
    if funding_stage:
        filters.append(FundingRequest.funding_stage == funding_stage)

    total = await session.scalar(select(func.count(FundingRequest.id)).where(*filters))
    priority = case(
        *[(FundingRequest.status == s, p) for s, p in STATUS_PRIORITY.items()],
        else_=len(STATUS_PRIORITY) + 1,
    )
    result = await session.execute(
        select(FundingRequest)
        .options(selectinload(FundingRequest.founder))
        .where(*filters)
        .order_by(priority, FundingRequest.created_at.desc(), FundingRequest.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    requests = result.scalars().all()
    counts = await outreach_counts_for(session, [r.id for r in requests])
    total = total or 0
    total_pages = (total + limit - 1) // limit
    return {
        "fundingRequests": [
            funding_request_to_dict(r, r.founder, counts.get(r.id, (0, 0))) for r in requests
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "totalCount": total,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


async def close_funding_request(
    session: AsyncSession,
    funding_request_id: str,
    caller_id: str,
    caller_role: str,
) -> dict[str, Any]:
    funding_request = await load_owned_request(session, funding_request_id, caller_id, caller_role)
    if funding_request.status == "closed":
        raise ValidationFailure("Funding request is already closed")
    funding_request.status = "closed"
    funding_request.updated_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("funding_request.closed", extra={"funding_request_id": funding_request.id, "by": caller_id})
    counts = await outreach_counts(session, funding_request.id)
    return funding_request_to_dict(funding_request, funding_request.founder, counts)


MAX_REFRESH_COUNT = 3
REFRESH_COOLDOWN = timedelta(hours=24)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def refresh_funding_allotment(
    session: AsyncSession,
    funding_request_id: str,
    caller_id: str,
    caller_role: str,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """
    Give an allotted request back to the assignment queue: drop every investor match,
    reopen it and count the refresh. Limited to MAX_REFRESH_COUNT refreshes, at most
    one per REFRESH_COOLDOWN.
    """
    if caller_role == ADMIN_ROLE:
        raise AccessDenied("Only founders can refresh funding allotments")
    funding_request = await load_owned_request(session, funding_request_id, caller_id, caller_role)
    if funding_request.status != "allotted":
        raise ValidationFailure("Can only refresh allotted funding requests")
    if funding_request.refresh_count >= MAX_REFRESH_COUNT:
        raise ValidationFailure(f"Maximum refresh limit ({MAX_REFRESH_COUNT}) reached for this funding request")

    now = datetime.now(timezone.utc)
    if funding_request.last_refreshed_at:
        elapsed = now - _as_utc(funding_request.last_refreshed_at)
        if elapsed < REFRESH_COOLDOWN:
            remaining = math.ceil((REFRESH_COOLDOWN - elapsed).total_seconds() / 3600)
            raise ValidationFailure(
                f"Please wait {remaining} hour{'s' if remaining > 1 else ''} before refreshing again"
            )

    removed = await session.scalar(
        select(func.count(FounderInvestorMatch.id)).where(FounderInvestorMatch.funding_request_id == funding_request.id)
    )
    await session.execute(
        delete(FounderInvestorMatch).where(FounderInvestorMatch.funding_request_id == funding_request.id)
    )
    funding_request.status = "open"
    funding_request.refresh_count += 1
    funding_request.last_refreshed_at = now
    funding_request.allotted_at = None
    funding_request.updated_at = now
    await session.flush()
    logger.info(
        "funding_request.refreshed",
        extra={
            "funding_request_id": funding_request.id,
            "refresh_count": funding_request.refresh_count,
            "investors_removed": removed or 0,
            "reason": reason,
        },
    )

    remaining_refreshes = MAX_REFRESH_COUNT - funding_request.refresh_count
    return {
        "message": "Funding request refreshed successfully",
        "data": {
            "fundingRequest": {
                "id": funding_request.id,
                "status": funding_request.status,
                "refreshCount": funding_request.refresh_count,
                "maxRefreshCount": MAX_REFRESH_COUNT,
                "remainingRefreshes": remaining_refreshes,
                "lastRefreshedAt": now.isoformat(),
                "canRefreshAgain": remaining_refreshes > 0,
            },
            "previousAssignment": {"investorsRemoved": removed or 0, "removedAt": now.isoformat()},
        },
    }


async def remove_investor_from_funding(
    session: AsyncSession,
    funding_request_id: str,
    investor_id: str,
    caller_id: str,
    caller_role: str,
) -> dict[str, Any]:
    """Delete one investor's match; an allotted request left with no matches reopens."""
    funding_request = await load_owned_request(session, funding_request_id, caller_id, caller_role)
    match = (await session.execute(
        select(FounderInvestorMatch).where(
            FounderInvestorMatch.funding_request_id == funding_request.id,
            FounderInvestorMatch.investor_id == investor_id,
        )
    )).scalar_one_or_none()
    if match is None:
        raise NotFound("Investor assignment not found")

    await session.delete(match)
    await session.flush()
    remaining = await session.scalar(
        select(func.count(FounderInvestorMatch.id)).where(FounderInvestorMatch.funding_request_id == funding_request.id)
    ) or 0
    if remaining == 0 and funding_request.status == "allotted":
        funding_request.status = "open"
        funding_request.allotted_at = None
        funding_request.updated_at = datetime.now(timezone.utc)
        await session.flush()
    logger.info(
        "funding_request.investor_removed",
        extra={"funding_request_id": funding_request.id, "investor_id": investor_id, "remaining": remaining},
    )
    return {
        "message": "Investor successfully removed from funding request",
        "data": {
            "removedInvestorId": investor_id,
            "remainingMatches": remaining,
            "fundingRequestStatus": funding_request.status,
        },
    }
