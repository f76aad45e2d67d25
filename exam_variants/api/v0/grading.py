"""
Grading API endpoints - v0.

Grades digitized answer sheets against the printed variant.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...services import variant_store
from ...services.auth_service import auth_service, Principal
from ...services.grading_service import grade_scanned_answers
from ...schemas.grading import (
    GradeRequest,
    GradeResponse,
    ScannedGradeResponse,
    ErrorResponse,
)
from .auth import get_current_staff

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v0/grading", tags=["grading"])


@router.post(
    "/variants/{unique_number}/grade",
    response_model=GradeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Grade a scanned answer sheet",
    description="Compare submitted answer tokens with the variant's printed answer key.",
)
async def grade_variant(
    unique_number: str,
    request: GradeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_staff),
) -> GradeResponse:
    center_id = request.center_id if request.center_id is not None else principal.center_id
    outcome = await grade_scanned_answers(
        db,
        unique_number,
        request.answers,
        student_id=request.student_id,
        center_id=center_id,
        source=request.source,
    )
    return GradeResponse(
        scanned_grade_id=outcome.scanned_grade.id,
        unique_number=outcome.variant.unique_number,
        variant_number=outcome.variant.variant_number,
        generated_test_id=outcome.variant.generated_test_id,
        result_id=outcome.ledger_row.id if outcome.ledger_row is not None else None,
        graded_at=outcome.scanned_grade.created_at,
        result=outcome.result,
    )


@router.get(
    "/variants/{unique_number}/scans",
    response_model=List[ScannedGradeResponse],
    responses={404: {"model": ErrorResponse}},
    summary="Audit trail of gradings for a variant",
)
async def list_variant_scans(
    unique_number: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_staff),
):
    variant = await variant_store.get_variant_by_unique_number(db, unique_number)
    auth_service.ensure_can_manage(principal, variant.generated_test)
    grades = await variant_store.list_scanned_grades(db, variant.id)
    return [ScannedGradeResponse.model_validate(g) for g in grades]
