"""
Result ledger API endpoints - v0.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...errors import ForbiddenError
from ...services import result_ledger
from ...services.auth_service import Principal, Role
from ...schemas.grading import ErrorResponse
from ...schemas.results import (
    ResultFilters,
    ResultListResponse,
    ResultResponse,
    UpdateCountsRequest,
    ManualResultRequest,
)
from .auth import get_current_principal, get_current_staff

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v0/results", tags=["results"])


@router.get("", response_model=ResultListResponse)
async def list_results(
    student_id: Optional[int] = Query(None),
    unique_number: Optional[str] = Query(None),
    center_id: Optional[int] = Query(None),
    subject_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None, description="Free text search"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ResultListResponse:
    """
    List ledger rows, newest first.
    Students only ever see their own results.
    """
    if principal.role == Role.STUDENT:
        student_id = principal.user_id

    filters = ResultFilters(
        student_id=student_id,
        unique_number=unique_number,
        center_id=center_id,
        subject_id=subject_id,
        q=q,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    rows, total = await result_ledger.list_results(db, filters)
    return ResultListResponse(
        items=[ResultResponse.model_validate(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{result_id}", response_model=ResultResponse, responses={404: {"model": ErrorResponse}})
async def get_result(
    result_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    row = await result_ledger.get_result(db, result_id)
    if principal.role == Role.STUDENT and row.student_id != principal.user_id:
        raise ForbiddenError("Students may only view their own results")
    return ResultResponse.model_validate(row)


@router.patch(
    "/{result_id}/counts",
    response_model=ResultResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Correct the counts of a result",
)
async def update_result_counts(
    result_id: int,
    request: UpdateCountsRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_staff),
):
    row = await result_ledger.update_result_counts(
        db,
        result_id,
        correct_count=request.correct_count,
        wrong_count=request.wrong_count,
    )
    return ResultResponse.model_validate(row)


@router.post(
    "/manual-by-variant",
    response_model=ResultResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Enter a result by hand for a printed variant",
)
async def create_manual_result(
    request: ManualResultRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_staff),
):
    row = await result_ledger.upsert_manual_result(
        db,
        unique_number=request.unique_number,
        student_id=request.student_id,
        total=request.total,
        correct_count=request.correct_count,
        center_id=request.center_id if request.center_id is not None else principal.center_id,
    )
    return ResultResponse.model_validate(row)
