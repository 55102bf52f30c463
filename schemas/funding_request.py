from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

FundingStage = Literal[
    "Pre-Seed",
    "Seed",
    "Series A",
    "Series B",
    "Series C",
    "Series D+",
    "Bridge/Convertible",
    "Growth/Late Stage",
]
FundingRequestStatus = Literal["open", "allotted", "closed"]
MatchStatus = Literal["active", "contacted", "interested", "declined", "funded"]


def _check_investor_ids(ids: list[str]) -> list[str]:
    if any(not i or not i.strip() for i in ids):
        raise ValueError("All investor IDs must be valid strings")
    return [i.strip() for i in ids]


class FundingRequestCreate(BaseModel):
    founder_id: Optional[str] = Field(None, alias="founderId")
    funding_stage: FundingStage = Field(..., alias="fundingStage")
    use_of_funds: str = Field(..., alias="useOfFunds")
    business_plan: Optional[str] = Field(None, alias="businessPlan")
    financial_projections: Optional[str] = Field(None, alias="financialProjections")
    additional_notes: Optional[str] = Field(None, alias="additionalNotes")
    send_to_investors_immediately: bool = Field(False, alias="sendToInvestorsImmediately")
    investor_ids: list[str] = Field(default_factory=list, alias="investorIds")
    custom_email_message: Optional[str] = Field(None, alias="customEmailMessage")
    specified_pitch_deck_document_ids: list[str] = Field(default_factory=list, alias="specifiedPitchDeckDocumentIds")

    model_config = {"populate_by_name": True}

    @field_validator("use_of_funds")
    @classmethod
    def _use_of_funds_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Use of funds is required")
        return value.strip()

    @model_validator(mode="after")
    def _investors_required_when_sending(self) -> "FundingRequestCreate":
        if self.send_to_investors_immediately:
            if not self.investor_ids:
                raise ValueError("When sending to investors immediately, at least one investor ID is required")
            self.investor_ids = _check_investor_ids(self.investor_ids)
        return self


class SendToInvestorsRequest(BaseModel):
    """Send an existing funding request's pitch deck to more investors."""
    investor_ids: list[str] = Field(..., alias="investorIds", min_length=1)
    custom_email_message: Optional[str] = Field(None, alias="customEmailMessage")
    specified_pitch_deck_document_ids: list[str] = Field(default_factory=list, alias="specifiedPitchDeckDocumentIds")

    model_config = {"populate_by_name": True}

    @field_validator("investor_ids")
    @classmethod
    def _valid_ids(cls, value: list[str]) -> list[str]:
        return _check_investor_ids(value)


class MatchStatusUpdate(BaseModel):
    status: MatchStatus
    notes: Optional[str] = Field(None, max_length=500)


class RefreshFundingRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
