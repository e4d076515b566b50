import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db
from models import Lender, LenderProduct
from schemas.lender import LenderCreate, LenderUpdate, ProductCreate, ProductUpdate
from services.document_requirements import parse_requirement

router = APIRouter(prefix="/api/lenders", tags=["lenders"])
products_router = APIRouter(prefix="/api/lender-products", tags=["lenders"])

MSG_LENDER_NOT_FOUND = "Lender not found"
MSG_PRODUCT_NOT_FOUND = "Product not found"


def _product_to_response(p: LenderProduct) -> dict[str, Any]:
    return {
        "id": p.id,
        "lenderId": p.lender_id,
        "name": p.name,
        "category": p.category,
        "country": p.country,
        "minAmount": p.min_amount,
        "maxAmount": p.max_amount,
        "minCreditScore": p.min_credit_score,
        "minAnnualRevenue": p.min_annual_revenue,
        "industries": p.industries or [],
        "docRequirements": p.doc_requirements or [],
        "interestRate": p.interest_rate,
        "termLength": p.term_length,
        "description": p.description,
        "isActive": p.is_active,
    }


def _lender_to_response(l: Lender) -> dict[str, Any]:
    return {
        "id": l.id,
        "name": l.name,
        "slug": l.slug,
        "description": l.description,
        "contactEmail": l.contact_email,
        "products": [_product_to_response(p) for p in l.products],
        "createdAt": l.created_at.isoformat() if l.created_at else None,
        "updatedAt": l.updated_at.isoformat() if l.updated_at else None,
    }


def _slug_to_id(slug: str) -> str:
    """Generate a short id from slug (e.g. 'meridian-capital' -> 'meridian-capital' or unique)."""
    return re.sub(r"[^a-z0-9-]", "", slug.lower()) or f"lender-{uuid.uuid4().hex[:8]}"


def _check_amount_range(min_amount: Optional[int], max_amount: Optional[int]) -> None:
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise HTTPException(status_code=400, detail="minAmount must be less than or equal to maxAmount")


def _normalize_country(country: Optional[str]) -> Optional[str]:
    return country.strip().upper() if country else country


def _check_doc_requirements(entries: Optional[list[Any]]) -> None:
    for entry in entries or []:
        if parse_requirement(entry) is None:
            raise HTTPException(status_code=400, detail=f"Invalid document requirement: {entry!r}")


def _new_product(lender_id: str, body: ProductCreate) -> LenderProduct:
    _check_amount_range(body.min_amount, body.max_amount)
    _check_doc_requirements(body.doc_requirements)
    now = datetime.now(timezone.utc)
    return LenderProduct(
        id=body.id or f"{lender_id}-{uuid.uuid4().hex[:8]}",
        lender_id=lender_id,
        name=body.name,
        category=body.category,
        country=_normalize_country(body.country) or "CA",
        min_amount=body.min_amount,
        max_amount=body.max_amount,
        min_credit_score=body.min_credit_score,
        min_annual_revenue=body.min_annual_revenue,
        industries=body.industries or [],
        doc_requirements=body.doc_requirements or [],
        interest_rate=body.interest_rate,
        term_length=body.term_length,
        description=body.description,
        is_active=body.is_active,
        created_at=now,
        updated_at=now,
    )


async def _get_lender_or_404(db: AsyncSession, lender_id: str) -> Lender:
    result = await db.execute(
        select(Lender).options(selectinload(Lender.products)).where(Lender.id == lender_id)
    )
    lender = result.scalar_one_or_none()
    if not lender:
        raise HTTPException(status_code=404, detail=MSG_LENDER_NOT_FOUND)
    return lender


async def _get_product_or_404(db: AsyncSession, lender_id: str, product_id: str) -> LenderProduct:
    result = await db.execute(
        select(LenderProduct).where(LenderProduct.id == product_id, LenderProduct.lender_id == lender_id)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail=MSG_PRODUCT_NOT_FOUND)
    return product


@router.get("", response_model=list[dict])
async def list_lenders(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Lender).options(selectinload(Lender.products)).order_by(Lender.name))
    lenders = result.scalars().all()
    return [_lender_to_response(l) for l in lenders]


@router.get("/{lender_id}", response_model=dict)
async def get_lender(lender_id: str, db: AsyncSession = Depends(get_db)):
    lender = await _get_lender_or_404(db, lender_id)
    return _lender_to_response(lender)


@router.post("", response_model=dict, status_code=201)
async def create_lender(body: LenderCreate, db: AsyncSession = Depends(get_db)):
    lender_id = _slug_to_id(body.slug)
    existing = await db.execute(
        select(Lender).where(or_(Lender.id == lender_id, Lender.slug == body.slug))
    )
    found = existing.scalar_one_or_none()
    if found:
        if found.slug == body.slug:
            raise HTTPException(status_code=400, detail="Slug already in use")
        lender_id = f"{lender_id}-{uuid.uuid4().hex[:6]}"
    now = datetime.now(timezone.utc)
    lender = Lender(
        id=lender_id,
        name=body.name,
        slug=body.slug,
        description=body.description,
        contact_email=body.contact_email,
        created_at=now,
        updated_at=now,
    )
    db.add(lender)
    await db.flush()
    for product_in in body.products or []:
        db.add(_new_product(lender.id, product_in))
    await db.flush()
    await db.refresh(lender, ["products"])
    return _lender_to_response(lender)


@router.patch("/{lender_id}", response_model=dict)
async def update_lender(lender_id: str, body: LenderUpdate, db: AsyncSession = Depends(get_db)):
    lender = await _get_lender_or_404(db, lender_id)
    if body.slug is not None and body.slug != lender.slug:
        taken = await db.execute(select(Lender.id).where(Lender.slug == body.slug))
        if taken.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="Slug already in use")
        lender.slug = body.slug
    if body.name is not None:
        lender.name = body.name
    if body.description is not None:
        lender.description = body.description
    if body.contact_email is not None:
        lender.contact_email = body.contact_email
    lender.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _lender_to_response(lender)


@router.post("/{lender_id}/products", response_model=dict, status_code=201)
async def create_product(lender_id: str, body: ProductCreate, db: AsyncSession = Depends(get_db)):
    lender = await _get_lender_or_404(db, lender_id)
    product = _new_product(lender.id, body)
    if body.id:
        clash = await db.execute(select(func.count(LenderProduct.id)).where(LenderProduct.id == body.id))
        if clash.scalar_one():
            raise HTTPException(status_code=400, detail="Product id already in use")
    db.add(product)
    await db.flush()
    return _product_to_response(product)


@router.patch("/{lender_id}/products/{product_id}", response_model=dict)
async def update_product(
    lender_id: str, product_id: str, body: ProductUpdate, db: AsyncSession = Depends(get_db)
):
    product = await _get_product_or_404(db, lender_id, product_id)
    changes = body.model_dump(exclude_unset=True, by_alias=False)
    _check_amount_range(
        changes.get("min_amount", product.min_amount),
        changes.get("max_amount", product.max_amount),
    )
    if "doc_requirements" in changes:
        _check_doc_requirements(changes["doc_requirements"])
    if "country" in changes:
        changes["country"] = _normalize_country(changes["country"])
    for attr, value in changes.items():
        setattr(product, attr, value)
    product.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _product_to_response(product)


@router.delete("/{lender_id}/products/{product_id}", status_code=204)
async def delete_product(lender_id: str, product_id: str, db: AsyncSession = Depends(get_db)):
    product = await _get_product_or_404(db, lender_id, product_id)
    await db.delete(product)
    await db.flush()
    return None


@products_router.get("", response_model=list[dict])
async def list_lender_products(
    category: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(LenderProduct).options(selectinload(LenderProduct.lender))
    if category:
        query = query.where(func.lower(LenderProduct.category) == category.strip().lower())
    if country:
        query = query.where(LenderProduct.country.in_([country.strip().upper(), "GLOBAL"]))
    if active is not None:
        query = query.where(LenderProduct.is_active.is_(active))
    result = await db.execute(query.order_by(LenderProduct.lender_id, LenderProduct.name))
    out = []
    for p in result.scalars().all():
        item = _product_to_response(p)
        item["lenderName"] = p.lender.name if p.lender else None
        out.append(item)
    return out
