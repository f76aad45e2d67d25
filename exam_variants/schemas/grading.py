"""
Pydantic schemas for scan grading request/response validation.
"""
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Grading outcome
# =============================================================================

QuestionStatus = Literal["correct", "wrong", "blank", "ungraded"]


class QuestionGrade(BaseModel):
    """Outcome for one printed question."""
    position: int = Field(..., description="1-based position on the printed variant")
    given: Optional[str] = Field(None, description="Normalized submitted label, None for blank")
    expected: Optional[str] = Field(None, description="Correct label, None when not auto-gradable")
    status: QuestionStatus


class GradeResult(BaseModel):
    """Counts and per-question detail of one grading."""
    total: int = Field(..., description="Number of auto-gradable questions")
    correct_count: int = 0
    wrong_count: int = 0
    blank_count: int = 0
    score: float = Field(0.0, description="Percentage of correct answers, one decimal")
    per_question: List[QuestionGrade] = Field(default_factory=list)


# =============================================================================
# API Request/Response Schemas
# =============================================================================

class GradeRequest(BaseModel):
    """Digitized answer sheet for one variant."""
    answers: Any = Field(
        ...,
        description="One token per question in printed order: a letter, a numeral label, or '-' for blank",
    )
    student_id: Optional[int] = Field(None, ge=1, description="Student to record the result for")
    center_id: Optional[int] = Field(None, ge=1)
    source: str = Field("scan", max_length=64, description="Where the answers came from")


class GradeResponse(BaseModel):
    scanned_grade_id: int
    unique_number: str
    variant_number: int
    generated_test_id: int
    result_id: Optional[int] = Field(None, description="Ledger row, when a student was given")
    graded_at: datetime
    result: GradeResult


class ScannedGradeResponse(BaseModel):
    id: int
    variant_id: int
    student_id: Optional[int] = None
    center_id: Optional[int] = None
    source: str
    answers: List[Any]
    result: GradeResult
    created_at: datetime

    class Config:
        from_attributes = True


class ErrorResponse(BaseModel):
    """Error body rendered for domain errors."""
    detail: str
