"""
Outreach delivery: the dispatcher contract and the email-API implementation.

A dispatcher reports delivery problems (bad address, provider timeout, HTTP errors)
inside the returned OutreachOutcome. It raises only for malformed calls.
"""
from __future__ import annotations

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx

from config import Settings
from models import Founder, FounderDocument
from schemas.outreach import OutreachOutcome
from services.investor_resolver import ContactableInvestor

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
MAX_EMAIL_LENGTH = 254


@dataclass
class OutreachRequest:
    founder: Founder
    recipients: list[ContactableInvestor]
    document_ids: list[str]
    message: str
    funding_request_id: Optional[str] = None
    documents: list[FounderDocument] = field(default_factory=list)


class OutreachDispatcher(Protocol):
    """Delivers a founder's pitch deck to investors."""

    async def dispatch(self, request: OutreachRequest) -> OutreachOutcome:
        ...


def validate_investor_emails(emails: list[str]) -> list[str]:
    """Trim, lower-case, drop malformed and duplicate addresses; order kept."""
    cleaned = []
    for email in emails:
        if not email or not isinstance(email, str):
            continue
        email = email.strip().lower()
        if len(email) <= MAX_EMAIL_LENGTH and _EMAIL_RE.match(email):
            cleaned.append(email)
    return list(dict.fromkeys(cleaned))


def render_text_body(
    founder: Founder,
    message: str,
    documents: list[FounderDocument],
    funding_request_id: str | None,
    platform_name: str,
) -> str:
    company = founder.company_name or "Our Company"
    lines = [f"INVESTMENT OPPORTUNITY - {company}", "", "Dear Investor,", ""]
    if message:
        lines += [message, ""]
    lines += ["COMPANY OVERVIEW:", f"- Company: {company}", f"- Industry: {founder.industry or 'Technology'}"]
    if founder.sector:
        lines.append(f"- Sector: {founder.sector}")
    if founder.team_size:
        lines.append(f"- Team Size: {founder.team_size}")
    if founder.website:
        lines.append(f"- Website: {founder.website}")
    if founder.description:
        lines += ["", "ABOUT OUR COMPANY:", founder.description]
    if documents:
        lines += ["", "PITCH DECK:"]
        lines += [f"- {d.name}" + (f": {d.url}" if d.url else "") for d in documents]
    lines += ["", f"Contact us: {founder.email}", "", "Best regards,", f"{company} Team", "", "---"]
    lines.append(f"This email was sent through {platform_name}'s investment platform")
    if funding_request_id:
        lines.append(f"Reference ID: {funding_request_id}")
    return "\n".join(lines)


def render_html_body(text_body: str) -> str:
    paragraphs = "".join(f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in text_body.split("\n\n"))
    return f"<!DOCTYPE html><html><body>{paragraphs}</body></html>"


def summarize_results(results: list[dict[str, Any]], total: int, document_count: int) -> OutreachOutcome:
    successful = sum(1 for r in results if r["status"] == "success")
    failed = len(results) - successful
    if successful == 0:
        success, message = False, "Failed to send emails to any investors"
    elif failed:
        success, message = True, f"Partially successful: {successful}/{total} emails sent"
    else:
        success, message = True, f"Successfully sent pitch deck to all {successful} investors"
    return OutreachOutcome(
        success=success,
        message=message,
        data={
            "totalEmails": total,
            "successfulEmails": successful,
            "failedEmails": failed,
            "documentCount": document_count,
            "results": results,
        },
    )


class EmailOutreachDispatcher:
    """Sends one email per investor through an HTTP email API, one at a time."""

    def __init__(
        self,
        api_url: str | None,
        *,
        api_key: str | None = None,
        sender: str = "Sintracap <support@sintracap.com>",
        platform_name: str = "Sintracap",
        timeout: float = 120.0,
        send_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._platform_name = platform_name
        self._send_delay = send_delay
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailOutreachDispatcher":
        return cls(
            settings.email_api_url,
            api_key=settings.email_api_key,
            sender=settings.email_from,
            platform_name=settings.platform_name,
            timeout=settings.email_timeout_seconds,
            send_delay=settings.email_send_delay_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def dispatch(self, request: OutreachRequest) -> OutreachOutcome:
        if request.founder is None:
            raise ValueError("Founder profile is required")
        if not request.recipients:
            raise ValueError("At least one investor recipient is required")
        if not request.document_ids:
            raise ValueError("At least one pitch deck document is required")

        emails = validate_investor_emails([r.email for r in request.recipients])
        if not emails:
            return OutreachOutcome(
                success=False,
                message="No valid investor email addresses found",
                data={"totalEmails": 0, "successfulEmails": 0, "failedEmails": 0, "results": []},
            )
        investor_by_email = {r.email.strip().lower(): r.id for r in request.recipients}

        company = request.founder.company_name or "Startup Investment"
        subject = f"Investment Opportunity - {company}"
        documents = [d for d in request.documents if d.id in set(request.document_ids)]
        text_body = render_text_body(
            request.founder, request.message, documents, request.funding_request_id, self._platform_name
        )
        html_body = render_html_body(text_body)

        results: list[dict[str, Any]] = []
        for index, email in enumerate(emails):
            if index > 0 and self._send_delay > 0:
                await asyncio.sleep(self._send_delay)
            error = await self._send_one(email, subject, text_body, html_body)
            entry: dict[str, Any] = {
                "email": email,
                "investorId": investor_by_email.get(email),
                "status": "success" if error is None else "failed",
                "sentAt": datetime.now(timezone.utc).isoformat(),
            }
            if error is not None:
                entry["error"] = error
                logger.error("outreach.email.failed", extra={"email": email, "error": error})
            results.append(entry)

        outcome = summarize_results(results, total=len(emails), document_count=len(request.document_ids))
        logger.info(
            "outreach.email.completed",
            extra={"funding_request_id": request.funding_request_id, "outcome": outcome.message},
        )
        return outcome

    async def _send_one(self, to: str, subject: str, text_body: str, html_body: str) -> str | None:
        """Returns None on success, otherwise a description of the delivery failure."""
        if not self._api_url:
            return "Email service is not configured"
        payload = {
            "to": to,
            "subject": subject,
            "textTemplate": text_body,
            "htmlTemplate": html_body,
            "from": self._sender,
        }
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            response = await self._http.post(self._api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            return "Email service timed out"
        except httpx.HTTPError as exc:
            return f"HTTP error calling email service: {exc}"
        if response.status_code >= 400:
            return f"Email service responded with {response.status_code}: {response.text[:200]}"
        return None


def log_outreach_activity(founder: Founder, recipients: list[ContactableInvestor], outcome: OutreachOutcome) -> None:
    data = outcome.data or {}
    failed = [
        {"email": r.get("email"), "error": r.get("error")}
        for r in data.get("results", [])
        if r.get("status") == "failed"
    ]
    logger.info(
        "outreach.activity",
        extra={
            "founder_id": founder.id,
            "company_name": founder.company_name,
            "recipient_count": len(recipients),
            "success_count": data.get("successfulEmails", 0),
            "fail_count": data.get("failedEmails", 0),
            "document_count": data.get("documentCount", 0),
            "failed_emails": failed,
            "success": outcome.success,
        },
    )
