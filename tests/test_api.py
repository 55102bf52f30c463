"""
HTTP surface, with the database and the email dispatcher swapped for test doubles.
Run from project root: python -m pytest tests/test_api.py -v
"""
import unittest

import httpx
from sqlalchemy import update

from api.deps import get_outreach_dispatcher
from database import get_db
from main import app
from models import FundingRequest
from tests.support import DatabaseTestCase, RecordingDispatcher

FOUNDER = {"X-User-Id": "f1"}
ADMIN = {"X-User-Id": "ops", "X-User-Role": "admin"}


class TestFundingRequestApi(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.dispatcher = RecordingDispatcher()

        async def override_get_db():
            async with self.sessionmaker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_outreach_dispatcher] = lambda: self.dispatcher
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

        await self.add_founder(documents=[("deck", True)])
        await self.add_investor("i1")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def create(self, headers=FOUNDER, **fields):
        body = {"fundingStage": "Seed", "useOfFunds": "Hiring engineers", **fields}
        return await self.client.post("/api/funding-requests", json=body, headers=headers)

    async def test_health(self):
        response = await self.client.get("/health")
        self.assertEqual(response.json(), {"status": "ok"})

    async def test_missing_identity_is_unauthorized(self):
        response = await self.create(headers={})
        self.assertEqual(response.status_code, 401)

    async def test_create_then_conflict(self):
        first = await self.create()
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()["data"]["fundingRequest"]["status"], "open")
        self.assertNotIn("emailResults", first.json()["data"])

        second = await self.create()
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["code"], "ACTIVE_REQUEST_EXISTS")

    async def test_invalid_bodies(self):
        missing_use = await self.client.post("/api/funding-requests", json={"fundingStage": "Seed"}, headers=FOUNDER)
        self.assertEqual(missing_use.status_code, 422)
        bad_stage = await self.create(fundingStage="Series Z")
        self.assertEqual(bad_stage.status_code, 422)
        no_investors = await self.create(sendToInvestorsImmediately=True)
        self.assertEqual(no_investors.status_code, 422)

    async def test_incomplete_profile(self):
        await self.add_founder("f2", signup_status="pre-signup")
        response = await self.create(headers={"X-User-Id": "f2"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "NOT_ELIGIBLE")

    async def test_admin_must_name_the_founder(self):
        response = await self.create(headers=ADMIN)
        self.assertEqual(response.status_code, 400)

        response = await self.create(headers=ADMIN, founderId="f1")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["fundingRequest"]["founder"]["id"], "f1")

    async def test_create_with_outreach_then_read_back(self):
        created = await self.create(sendToInvestorsImmediately=True, investorIds=["i1", "missing"])
        self.assertEqual(created.status_code, 201)
        self.assertTrue(created.json()["data"]["emailResults"]["success"])
        request_id = created.json()["data"]["fundingRequest"]["id"]

        detail = await self.client.get(f"/api/funding-requests/{request_id}", headers=FOUNDER)
        self.assertEqual(detail.status_code, 200)
        funding_request = detail.json()["data"]["fundingRequest"]
        self.assertEqual(funding_request["totalEmailsSent"], 1)
        self.assertEqual([m["investorId"] for m in funding_request["matches"]], ["i1"])
        self.assertEqual(funding_request["matches"][0]["deliveryStatus"], "sent")

        stranger = await self.client.get(f"/api/funding-requests/{request_id}", headers={"X-User-Id": "f2"})
        self.assertEqual(stranger.status_code, 403)

        match_id = funding_request["matches"][0]["id"]
        patched = await self.client.patch(
            f"/api/matches/{match_id}/status", json={"status": "contacted"}, headers=FOUNDER
        )
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json()["data"]["previousStatus"], "active")

    async def test_list_send_and_close(self):
        created = await self.create()
        request_id = created.json()["data"]["fundingRequest"]["id"]

        listed = await self.client.get("/api/funding-requests", params={"status": "open"}, headers=FOUNDER)
        self.assertEqual(listed.status_code, 200)
        data = listed.json()["data"]
        self.assertEqual([r["id"] for r in data["fundingRequests"]], [request_id])
        self.assertEqual(data["pagination"]["totalCount"], 1)
        self.assertFalse(data["pagination"]["hasNextPage"])

        bad_limit = await self.client.get("/api/funding-requests", params={"limit": 500}, headers=FOUNDER)
        self.assertEqual(bad_limit.status_code, 400)

        sent = await self.client.post(
            f"/api/funding-requests/{request_id}/send", json={"investorIds": ["i1"]}, headers=FOUNDER
        )
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.json()["data"]["contactedInvestorsCount"], 1)
        self.assertEqual(len(self.dispatcher.requests), 1)

        closed = await self.client.post(f"/api/funding-requests/{request_id}/close", headers=FOUNDER)
        self.assertEqual(closed.status_code, 200)
        self.assertEqual(closed.json()["data"]["fundingRequest"]["status"], "closed")

        resend = await self.client.post(
            f"/api/funding-requests/{request_id}/send", json={"investorIds": ["i1"]}, headers=FOUNDER
        )
        self.assertEqual(resend.status_code, 400)

        again = await self.create()
        self.assertEqual(again.status_code, 201)

    async def set_status(self, request_id, status):
        await self.session.execute(update(FundingRequest).where(FundingRequest.id == request_id).values(status=status))
        await self.session.commit()

    async def test_remove_investor_and_refresh(self):
        created = await self.create(sendToInvestorsImmediately=True, investorIds=["i1"])
        request_id = created.json()["data"]["fundingRequest"]["id"]
        await self.set_status(request_id, "allotted")

        unknown = await self.client.delete(f"/api/funding-requests/{request_id}/investors/i2", headers=FOUNDER)
        self.assertEqual(unknown.status_code, 404)
        removed = await self.client.delete(f"/api/funding-requests/{request_id}/investors/i1", headers=FOUNDER)
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(removed.json()["data"]["fundingRequestStatus"], "open")

        not_allotted = await self.client.post(f"/api/funding-requests/{request_id}/refresh", headers=FOUNDER)
        self.assertEqual(not_allotted.status_code, 400)

        await self.set_status(request_id, "allotted")
        refreshed = await self.client.post(
            f"/api/funding-requests/{request_id}/refresh", json={"reason": "No replies"}, headers=FOUNDER
        )
        self.assertEqual(refreshed.status_code, 200)
        self.assertEqual(refreshed.json()["data"]["fundingRequest"]["refreshCount"], 1)

        again = await self.client.post(f"/api/funding-requests/{request_id}/refresh", headers=FOUNDER)
        self.assertEqual(again.status_code, 400)

    async def test_unknown_request(self):
        response = await self.client.get("/api/funding-requests/fr-nope", headers=FOUNDER)
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
