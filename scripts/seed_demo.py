"""
Seed demo founders, pitch deck documents and investors.
Run: python -m scripts.seed_demo (from the project root).
"""
import asyncio
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import AsyncSessionLocal, init_db
from models import Founder, FounderDocument, Investor


FOUNDERS_DATA = [
    {
        "id": "founder-acme",
        "company_name": "Acme Robotics",
        "email": "team@acmerobotics.io",
        "industry": "Robotics",
        "sector": "Industrial Automation",
        "website": "https://acmerobotics.io",
        "team_size": "11-50",
        "signup_status": "complete",
        "documents": [
            {"id": "doc-acme-deck", "name": "Acme Seed Deck.pdf", "is_verified": True, "uploaded_at": "2025-03-01"},
            {"id": "doc-acme-model", "name": "Acme Financial Model.xlsx", "is_verified": False, "uploaded_at": "2025-03-04"},
        ],
    },
    {
        "id": "founder-nimbus",
        "company_name": "Nimbus Health",
        "email": "founders@nimbushealth.com",
        "industry": "Healthcare",
        "signup_status": "role-selected",
        "documents": [],
    },
]

INVESTORS_DATA = [
    {"id": "inv-lee", "full_name": "Dana Lee", "email": "dana@northfield.vc", "email_verified": True,
     "company": "Northfield Ventures", "investment_interests": ["Robotics", "Climate"]},
    {"id": "inv-okafor", "full_name": "Chidi Okafor", "email": "chidi@baobab.capital", "email_verified": True,
     "company": "Baobab Capital", "investment_interests": ["Healthcare"]},
    {"id": "inv-unverified", "full_name": "Sam Park", "email": "sam@example.com", "email_verified": False,
     "company": "Angel"},
]


def _date(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


async def seed():
    await init_db()
    async with AsyncSessionLocal() as session:
        for data in FOUNDERS_DATA:
            if await session.get(Founder, data["id"]):
                print(f"Founder {data['id']} already exists, skipping")
                continue
            documents = data.pop("documents")
            session.add(Founder(**data))
            await session.flush()
            for d in documents:
                session.add(FounderDocument(founder_id=data["id"], **{**d, "uploaded_at": _date(d["uploaded_at"])}))
            print(f"Seeded founder: {data['company_name']}")
        for data in INVESTORS_DATA:
            if await session.get(Investor, data["id"]):
                print(f"Investor {data['id']} already exists, skipping")
                continue
            session.add(Investor(**data))
            print(f"Seeded investor: {data['full_name']}")
        await session.commit()
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
