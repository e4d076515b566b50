"""
Seed a starter lender catalog (Canadian and US working-capital, term, LOC and equipment products).
Run: python -m scripts.seed_lenders (from the project root).
"""
import asyncio
import os
import sys

# Add parent so we can import from the project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from database import AsyncSessionLocal, init_db
from models import Lender, LenderProduct


LENDERS_DATA = [
    {
        "id": "northern-lights-capital",
        "name": "Northern Lights Capital",
        "slug": "northern-lights-capital",
        "description": "Canadian working capital and lines of credit",
        "products": [
            {
                "id": "nlc-working-capital",
                "name": "Working Capital Advance",
                "category": "working_capital",
                "country": "CA",
                "min_amount": 10_000,
                "max_amount": 500_000,
                "min_credit_score": 600,
                "min_annual_revenue": 150_000,
                "industries": ["retail", "restaurant", "construction", "professional services"],
                "doc_requirements": [
                    {"key": "bank_statements", "required": True, "months": 3},
                    "Tax Returns",
                    "Void Cheque",
                ],
                "interest_rate": "8.9% - 18%",
                "term_length": "6 - 18 months",
            },
            {
                "id": "nlc-line-of-credit",
                "name": "Business Line of Credit",
                "category": "line_of_credit",
                "country": "CA",
                "min_amount": 25_000,
                "max_amount": 250_000,
                "min_credit_score": 650,
                "min_annual_revenue": 300_000,
                "industries": [],
                "doc_requirements": ["Bank Statements", "Financial Statements"],
                "interest_rate": "Prime + 3%",
                "term_length": "Revolving",
            },
        ],
    },
    {
        "id": "meridian-business-finance",
        "name": "Meridian Business Finance",
        "slug": "meridian-business-finance",
        "description": "US term loans and SBA",
        "products": [
            {
                "id": "meridian-term",
                "name": "Growth Term Loan",
                "category": "term_loan",
                "country": "US",
                "min_amount": 50_000,
                "max_amount": 2_000_000,
                "min_credit_score": 680,
                "min_annual_revenue": 500_000,
                "industries": ["all"],
                "doc_requirements": [
                    {"key": "bank_statements", "months": 12},
                    {"key": "tax_returns", "months": 24, "label": "Two years of business tax returns"},
                    "Financial Statements",
                ],
                "interest_rate": "7.5% - 12%",
                "term_length": "2 - 5 years",
            },
        ],
    },
    {
        "id": "polar-equipment-leasing",
        "name": "Polar Equipment Leasing",
        "slug": "polar-equipment-leasing",
        "description": "Equipment financing in Canada and the US",
        "products": [
            {
                "id": "polar-equipment",
                "name": "Equipment Financing",
                "category": "equipment_financing",
                "country": "GLOBAL",
                "min_amount": 15_000,
                "max_amount": 1_000_000,
                "min_credit_score": 620,
                "min_annual_revenue": None,
                "industries": ["construction", "transportation", "manufacturing", "agriculture"],
                "doc_requirements": [
                    "Equipment Quote",
                    {"key": "bank_statements", "months": 4},
                ],
                "interest_rate": "6.9% - 14%",
                "term_length": "24 - 72 months",
            },
        ],
    },
    {
        "id": "harbour-factoring",
        "name": "Harbour Factoring",
        "slug": "harbour-factoring",
        "description": "Invoice factoring for B2B receivables",
        "products": [
            {
                "id": "harbour-invoice",
                "name": "Invoice Factoring",
                "category": "invoice_factoring",
                "country": "CA",
                "min_amount": 5_000,
                "max_amount": 750_000,
                "min_credit_score": None,
                "min_annual_revenue": 100_000,
                "industries": ["transportation", "staffing", "manufacturing", "wholesale"],
                "doc_requirements": ["Accounts Receivable Aging", "Bank Statements"],
                "interest_rate": "1.5% - 4% per 30 days",
                "term_length": "30 - 90 days",
            },
        ],
    },
]


async def seed():
    await init_db()
    async with AsyncSessionLocal() as session:
        for data in LENDERS_DATA:
            existing = await session.execute(select(Lender).where(Lender.id == data["id"]))
            if existing.scalar_one_or_none():
                print(f"Lender {data['id']} already exists, skipping")
                continue
            lender = Lender(
                id=data["id"],
                name=data["name"],
                slug=data["slug"],
                description=data["description"],
            )
            session.add(lender)
            await session.flush()
            for p in data["products"]:
                session.add(LenderProduct(lender_id=lender.id, is_active=True, **p))
            print(f"Seeded lender: {data['name']} ({len(data['products'])} products)")
        await session.commit()
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
