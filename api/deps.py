"""
Request-scoped dependencies.

Identity is verified upstream; this service trusts the caller id and role the
gateway forwards in X-User-Id / X-User-Role.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from config import settings
from services.outreach import EmailOutreachDispatcher


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str = "founder"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: str = Header("founder"),
) -> CurrentUser:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return CurrentUser(id=x_user_id.strip(), role=x_user_role.strip().lower() or "founder")


async def get_outreach_dispatcher():
    dispatcher = EmailOutreachDispatcher.from_settings(settings)
    try:
        yield dispatcher
    finally:
        await dispatcher.aclose()
