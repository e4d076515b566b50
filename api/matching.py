from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.matching import MatchingError, match_application, transmit_application

router = APIRouter(prefix="/api/matching", tags=["matching"])


@router.get("/{application_id}")
async def get_matches(
    application_id: str,
    limit: int = Query(10, ge=1, le=100),
    include_ineligible: bool = Query(False, alias="includeIneligible"),
    db: AsyncSession = Depends(get_db),
):
    """Rank active lender products for an application. Nothing is written."""
    try:
        return await match_application(db, application_id, limit=limit, include_ineligible=include_ineligible)
    except MatchingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("/{application_id}/transmit/{product_id}", status_code=201)
async def transmit(application_id: str, product_id: str, db: AsyncSession = Depends(get_db)):
    try:
        transmission = await transmit_application(db, application_id, product_id)
    except MatchingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {
        "success": True,
        "transmissionId": transmission.id,
        "applicationId": transmission.application_id,
        "productId": transmission.lender_product_id,
        "status": transmission.status,
    }
