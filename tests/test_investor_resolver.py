import unittest

from errors import NoContactableInvestors, NoValidInvestors
from services.investor_resolver import (
    ResolvedInvestors,
    get_contactable_investors,
    require_contactable,
    require_found,
    resolve_investors,
)
from tests.support import DatabaseTestCase


class TestInvestorResolver(DatabaseTestCase):
    async def test_splits_found_and_missing_in_caller_order(self):
        await self.add_investor("i2")
        await self.add_investor("i1")
        resolved = await resolve_investors(self.session, ["i1", "ghost", "i2", "i1"])
        self.assertEqual(resolved.found, ["i1", "i2"])
        self.assertEqual(resolved.missing, ["ghost"])

    async def test_empty_input(self):
        resolved = await resolve_investors(self.session, [])
        self.assertEqual(resolved, ResolvedInvestors())

    async def test_contactable_requires_verified_non_empty_email(self):
        await self.add_investor("i1", email="  Partner@Fund.Example.com ")
        await self.add_investor("i2", email_verified=False)
        await self.add_investor("i3", email="")
        contactable = await get_contactable_investors(self.session, ["i1", "i2", "i3"])
        self.assertEqual([c.id for c in contactable], ["i1"])
        self.assertEqual(contactable[0].email, "partner@fund.example.com")

    async def test_require_helpers_raise(self):
        with self.assertRaises(NoValidInvestors):
            require_found(ResolvedInvestors(found=[], missing=["x"]))
        with self.assertRaises(NoContactableInvestors):
            require_contactable([])


if __name__ == "__main__":
    unittest.main()
