"""Payouts API: calculate a period, finalize it, mark it paid, view results."""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from agencycomp.core.database import get_db
from agencycomp.schemas.payout import CompPayoutRead, PayoutRunRequest, PayoutRunResponse
from agencycomp.services.payout_service import PayoutService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payouts", tags=["payouts"])


@router.post("/calculate/{year}/{month}", response_model=PayoutRunResponse)
def calculate_payouts(
    year: int,
    month: int,
    body: PayoutRunRequest,
    db: Session = Depends(get_db),
):
    """Run payouts for a period from statement metrics; optionally save them as drafts."""
    service = PayoutService(db)
    try:
        return service.calculate_period(body, month, year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/finalize/{year}/{month}")
def finalize_payouts(year: int, month: int, db: Session = Depends(get_db)):
    service = PayoutService(db)
    try:
        count = service.finalize_period(month, year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"finalized": count}


@router.post("/mark-paid/{year}/{month}")
def mark_payouts_paid(year: int, month: int, db: Session = Depends(get_db)):
    service = PayoutService(db)
    try:
        count = service.mark_period_paid(month, year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"paid": count}


@router.get("/detail/{payout_id}", response_model=CompPayoutRead)
def get_payout_detail(payout_id: int, db: Session = Depends(get_db)):
    payout = PayoutService(db).get_payout(payout_id)
    if not payout:
        raise HTTPException(status_code=404, detail="Payout not found")
    return payout


@router.get("/{year}/{month}", response_model=List[CompPayoutRead])
def list_payouts(year: int, month: int, db: Session = Depends(get_db)):
    try:
        return PayoutService(db).list_payouts(month, year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
