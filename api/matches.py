from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import CurrentUser, get_current_user
from database import get_db
from schemas.funding_request import MatchStatusUpdate
from services.match_status import update_match_status

router = APIRouter(prefix="/api/matches", tags=["matches"])


@router.patch("/{match_id}/status")
async def patch_match_status(
    match_id: str,
    body: MatchStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await update_match_status(db, match_id, user.id, user.role, body.status, body.notes)
