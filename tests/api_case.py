"""
Shared harness for API tests: the real FastAPI app on a fresh in-memory SQLite
database per test, driven through httpx.AsyncClient + ASGITransport.
"""
import unittest

import httpx

from database import Base, build_engine, build_session_factory, get_db, get_session_factory
from main import app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def step_payload(
    business_name: str = "Acme Co",
    email: str = "owner@acme.example",
    amount=50_000,
    **extra,
) -> dict:
    """A complete step-keyed submission; keyword args are merged into the top level."""
    payload = {
        "step1": {
            "requestedAmount": amount,
            "useOfFunds": "Inventory and payroll",
            "businessLocation": "CA",
        },
        "step2": {},
        "step3": {
            "businessName": business_name,
            "legalBusinessName": f"{business_name} Ltd.",
            "industry": "retail",
            "annualRevenue": "600,000",
        },
        "step4": {
            "firstName": "Dana",
            "lastName": "Reyes",
            "email": email,
            "phone": "(416) 555-0199",
            "creditScore": 700,
        },
    }
    payload.update(extra)
    return payload


class ApiTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = build_engine(TEST_DATABASE_URL)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.session_factory = build_session_factory(self.engine)

        async def _get_db():
            async with self.session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_session_factory] = lambda: self.session_factory
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await self.engine.dispose()

    async def submit(self, payload: dict) -> httpx.Response:
        return await self.client.post("/api/applications", json=payload)

    async def create_application(self, **kwargs) -> dict:
        response = await self.submit(step_payload(**kwargs))
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()
