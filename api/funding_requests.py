from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import CurrentUser, get_current_user, get_outreach_dispatcher
from database import get_db
from errors import ValidationFailure
from schemas.funding_request import FundingRequestCreate, RefreshFundingRequest, SendToInvestorsRequest
from services.funding_requests import (
    FundingRequestOrchestrator,
    close_funding_request,
    get_funding_request,
    list_funding_requests,
    refresh_funding_allotment,
    remove_investor_from_funding,
)
from services.outreach import OutreachDispatcher

router = APIRouter(prefix="/api/funding-requests", tags=["funding-requests"])


def _resolve_founder_id(body: FundingRequestCreate, user: CurrentUser) -> str:
    """Admins act on behalf of the founder named in the body; everyone else on themselves."""
    if user.is_admin:
        if not body.founder_id:
            raise ValidationFailure("Founder ID is required")
        return body.founder_id
    return user.id


@router.post("", status_code=201)
async def create_funding_request(
    body: FundingRequestCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    dispatcher: OutreachDispatcher = Depends(get_outreach_dispatcher),
):
    founder_id = _resolve_founder_id(body, user)
    orchestrator = FundingRequestOrchestrator(db, dispatcher)
    return await orchestrator.create_funding_request(founder_id, body, assigned_by=user.id)


@router.get("")
async def list_requests(
    status: Optional[str] = None,
    funding_stage: Optional[str] = Query(None, alias="fundingStage"),
    page: int = 1,
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    data = await list_funding_requests(
        db, user.id, user.role, status=status, funding_stage=funding_stage, page=page, limit=limit
    )
    return {"message": "Funding requests retrieved successfully", "data": data}


@router.get("/{funding_request_id}")
async def get_request(
    funding_request_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    data = await get_funding_request(db, funding_request_id, user.id, user.role)
    return {"data": {"fundingRequest": data}}


@router.post("/{funding_request_id}/send")
async def send_to_investors(
    funding_request_id: str,
    body: SendToInvestorsRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    dispatcher: OutreachDispatcher = Depends(get_outreach_dispatcher),
):
    orchestrator = FundingRequestOrchestrator(db, dispatcher)
    return await orchestrator.send_to_investors(
        funding_request_id,
        user.id,
        user.role,
        body.investor_ids,
        custom_message=body.custom_email_message,
        document_ids=body.specified_pitch_deck_document_ids,
    )


@router.post("/{funding_request_id}/close")
async def close_request(
    funding_request_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    data = await close_funding_request(db, funding_request_id, user.id, user.role)
    return {"message": "Funding request closed", "data": {"fundingRequest": data}}


@router.post("/{funding_request_id}/refresh")
async def refresh_request(
    funding_request_id: str,
    body: Optional[RefreshFundingRequest] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    reason = body.reason if body else None
    return await refresh_funding_allotment(db, funding_request_id, user.id, user.role, reason=reason)


@router.delete("/{funding_request_id}/investors/{investor_id}")
async def remove_investor(
    funding_request_id: str,
    investor_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await remove_investor_from_funding(db, funding_request_id, investor_id, user.id, user.role)
