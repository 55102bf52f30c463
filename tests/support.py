"""Shared fixtures: a fresh database per test and fake dispatchers."""
import asyncio
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from database import init_db, make_engine, make_sessionmaker
from models import Founder, FounderDocument, Investor
from schemas.outreach import OutreachOutcome

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    def database_url(self):
        return "sqlite+aiosqlite://"

    async def asyncSetUp(self):
        self.engine = make_engine(self.database_url())
        await init_db(self.engine)
        self.sessionmaker = make_sessionmaker(self.engine)
        self.session = self.sessionmaker()

    async def asyncTearDown(self):
        await self.session.close()
        await self.engine.dispose()

    async def count(self, model, *where):
        return await self.session.scalar(select(func.count(model.id)).where(*where))

    async def add_founder(self, founder_id="f1", signup_status="complete", company_name="Acme Robotics", documents=()):
        founder = Founder(
            id=founder_id,
            company_name=company_name,
            email=f"{founder_id}@example.com",
            industry="Robotics",
            signup_status=signup_status,
        )
        self.session.add(founder)
        for index, (doc_id, verified) in enumerate(documents):
            self.session.add(FounderDocument(
                id=doc_id,
                founder_id=founder_id,
                name=f"{doc_id}.pdf",
                url=f"https://files.example.com/{doc_id}.pdf",
                is_verified=verified,
                uploaded_at=BASE_TIME + timedelta(days=index),
            ))
        await self.session.commit()
        return founder

    async def add_investor(self, investor_id, email=None, email_verified=True):
        investor = Investor(
            id=investor_id,
            full_name=f"Investor {investor_id}",
            email=email if email is not None else f"{investor_id}@fund.example.com",
            email_verified=email_verified,
            company="Example Fund",
        )
        self.session.add(investor)
        await self.session.commit()
        return investor


class FileDatabaseTestCase(DatabaseTestCase):
    """On-disk SQLite, so concurrent sessions get their own connections."""

    def database_url(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        return f"sqlite+aiosqlite:///{os.path.join(self._tmpdir.name, 'test.db')}"


class RecordingDispatcher:
    """Reports every recipient as delivered and remembers what it was asked to send."""

    def __init__(self):
        self.requests = []

    async def dispatch(self, request):
        self.requests.append(request)
        results = [{"email": r.email, "investorId": r.id, "status": "success"} for r in request.recipients]
        return OutreachOutcome(
            success=True,
            message=f"Successfully sent pitch deck to all {len(results)} investors",
            data={"totalEmails": len(results), "successfulEmails": len(results), "failedEmails": 0, "results": results},
        )


class ExplodingDispatcher:
    def __init__(self, message="email provider unavailable"):
        self.message = message
        self.calls = 0

    async def dispatch(self, request):
        self.calls += 1
        raise RuntimeError(self.message)


class SlowDispatcher(RecordingDispatcher):
    """Like RecordingDispatcher, but takes a while, as a real email provider does."""

    def __init__(self, delay=0.2):
        super().__init__()
        self.delay = delay

    async def dispatch(self, request):
        await asyncio.sleep(self.delay)
        return await super().dispatch(request)
