from models.founder import Founder, FounderDocument
from models.funding_request import FounderInvestorMatch, FundingRequest
from models.investor import Investor

__all__ = [
    "Founder",
    "FounderDocument",
    "FounderInvestorMatch",
    "FundingRequest",
    "Investor",
]
