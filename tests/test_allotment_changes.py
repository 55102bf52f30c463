"""
Refreshing an allotted funding request and removing single investors from it.
Run from project root: python -m pytest tests/test_allotment_changes.py -v
"""
import unittest
from datetime import datetime, timedelta, timezone

from errors import AccessDenied, NotFound, ValidationFailure
from models import FounderInvestorMatch, FundingRequest
from services.funding_requests import MAX_REFRESH_COUNT, refresh_funding_allotment, remove_investor_from_funding
from tests.support import DatabaseTestCase


class AllotmentTestCase(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.add_founder()
        for investor_id in ("i1", "i2"):
            await self.add_investor(investor_id)

    async def allotted_request(self, investor_ids=("i1", "i2"), **fields):
        self.session.add(FundingRequest(
            id="fr-1",
            founder_id="f1",
            funding_stage="Seed",
            use_of_funds="x",
            status="allotted",
            allotted_at=datetime.now(timezone.utc),
            **fields,
        ))
        for investor_id in investor_ids:
            self.session.add(FounderInvestorMatch(
                id=f"m-{investor_id}", funding_request_id="fr-1", founder_id="f1", investor_id=investor_id
            ))
        await self.session.commit()
        return await self.session.get(FundingRequest, "fr-1")


class TestRefreshFundingAllotment(AllotmentTestCase):
    async def test_refresh_clears_matches_and_reopens(self):
        await self.allotted_request()

        response = await refresh_funding_allotment(self.session, "fr-1", "f1", "founder", reason="No replies")

        data = response["data"]
        self.assertEqual(response["message"], "Funding request refreshed successfully")
        self.assertEqual(data["fundingRequest"]["status"], "open")
        self.assertEqual(data["fundingRequest"]["refreshCount"], 1)
        self.assertEqual(data["fundingRequest"]["remainingRefreshes"], MAX_REFRESH_COUNT - 1)
        self.assertTrue(data["fundingRequest"]["canRefreshAgain"])
        self.assertEqual(data["previousAssignment"]["investorsRemoved"], 2)
        self.assertEqual(await self.count(FounderInvestorMatch), 0)

        funding_request = await self.session.get(FundingRequest, "fr-1")
        self.assertIsNone(funding_request.allotted_at)
        self.assertIsNotNone(funding_request.last_refreshed_at)

    async def test_only_allotted_requests_refresh(self):
        funding_request = await self.allotted_request()
        funding_request.status = "open"
        await self.session.commit()
        with self.assertRaises(ValidationFailure) as ctx:
            await refresh_funding_allotment(self.session, "fr-1", "f1", "founder")
        self.assertEqual(ctx.exception.message, "Can only refresh allotted funding requests")

    async def test_refresh_limit(self):
        await self.allotted_request(refresh_count=MAX_REFRESH_COUNT)
        with self.assertRaises(ValidationFailure) as ctx:
            await refresh_funding_allotment(self.session, "fr-1", "f1", "founder")
        self.assertIn(f"Maximum refresh limit ({MAX_REFRESH_COUNT})", ctx.exception.message)
        self.assertEqual(await self.count(FounderInvestorMatch), 2)

    async def test_cooldown_between_refreshes(self):
        await self.allotted_request(refresh_count=1, last_refreshed_at=datetime.now(timezone.utc) - timedelta(hours=2))
        with self.assertRaises(ValidationFailure) as ctx:
            await refresh_funding_allotment(self.session, "fr-1", "f1", "founder")
        self.assertEqual(ctx.exception.message, "Please wait 22 hours before refreshing again")

    async def test_cooldown_elapsed(self):
        await self.allotted_request(refresh_count=2, last_refreshed_at=datetime.now(timezone.utc) - timedelta(hours=25))
        response = await refresh_funding_allotment(self.session, "fr-1", "f1", "founder")
        self.assertEqual(response["data"]["fundingRequest"]["refreshCount"], 3)
        self.assertFalse(response["data"]["fundingRequest"]["canRefreshAgain"])

    async def test_only_the_owning_founder_refreshes(self):
        await self.allotted_request()
        with self.assertRaises(AccessDenied):
            await refresh_funding_allotment(self.session, "fr-1", "f2", "founder")
        with self.assertRaises(AccessDenied):
            await refresh_funding_allotment(self.session, "fr-1", "ops", "admin")


class TestRemoveInvestorFromFunding(AllotmentTestCase):
    async def test_remove_one_of_two(self):
        await self.allotted_request()

        response = await remove_investor_from_funding(self.session, "fr-1", "i1", "f1", "founder")

        self.assertEqual(response["data"]["removedInvestorId"], "i1")
        self.assertEqual(response["data"]["remainingMatches"], 1)
        self.assertEqual(response["data"]["fundingRequestStatus"], "allotted")

    async def test_removing_the_last_investor_reopens(self):
        await self.allotted_request(investor_ids=("i1",))

        response = await remove_investor_from_funding(self.session, "fr-1", "i1", "ops", "admin")

        self.assertEqual(response["data"]["remainingMatches"], 0)
        self.assertEqual(response["data"]["fundingRequestStatus"], "open")
        funding_request = await self.session.get(FundingRequest, "fr-1")
        self.assertIsNone(funding_request.allotted_at)

    async def test_unknown_assignment(self):
        await self.allotted_request(investor_ids=("i1",))
        with self.assertRaises(NotFound) as ctx:
            await remove_investor_from_funding(self.session, "fr-1", "i2", "f1", "founder")
        self.assertEqual(ctx.exception.message, "Investor assignment not found")

    async def test_other_founders_cannot_remove(self):
        await self.allotted_request()
        with self.assertRaises(AccessDenied):
            await remove_investor_from_funding(self.session, "fr-1", "i1", "f2", "founder")
        self.assertEqual(await self.count(FounderInvestorMatch), 2)


if __name__ == "__main__":
    unittest.main()
