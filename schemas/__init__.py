from schemas.funding_request import (
    FundingRequestCreate,
    FundingRequestStatus,
    FundingStage,
    MatchStatus,
    MatchStatusUpdate,
    RefreshFundingRequest,
    SendToInvestorsRequest,
)
from schemas.outreach import OutreachOutcome, StepOutcome

__all__ = [
    "FundingRequestCreate",
    "FundingRequestStatus",
    "FundingStage",
    "MatchStatus",
    "MatchStatusUpdate",
    "RefreshFundingRequest",
    "SendToInvestorsRequest",
    "OutreachOutcome",
    "StepOutcome",
]
