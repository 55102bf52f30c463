from typing import Any

from pydantic import BaseModel, Field


class StepOutcome(BaseModel):
    """Result of one step of the outreach branch."""
    step: str
    ok: bool
    detail: str = ""


class OutreachOutcome(BaseModel):
    """What happened when outreach was attempted. Never persisted."""
    success: bool
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
