"""
Pydantic schemas for the result ledger API.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator


class ResultResponse(BaseModel):
    """A ledger row."""
    id: int
    student_id: Optional[int] = None
    center_id: Optional[int] = None
    unique_number: str
    variant_id: Optional[int] = None
    generated_test_id: Optional[int] = None
    subject_id: Optional[int] = None
    subject_name: Optional[str] = None
    test_title: Optional[str] = None
    total: int
    correct_count: int
    wrong_count: int
    blank_count: int
    score: float
    per_question: Optional[List[Any]] = None
    source: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ResultListResponse(BaseModel):
    items: List[ResultResponse]
    total: int
    page: int
    page_size: int


class ResultFilters(BaseModel):
    """Query filters for listing results. All optional, combined with AND."""
    student_id: Optional[int] = None
    unique_number: Optional[str] = None
    center_id: Optional[int] = None
    subject_id: Optional[int] = None
    q: Optional[str] = Field(None, description="Free text over unique number, test title and subject")
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)


class UpdateCountsRequest(BaseModel):
    """Operator correction of a ledger row."""
    correct_count: Optional[int] = Field(None, ge=0)
    wrong_count: Optional[int] = Field(None, ge=0)

    @model_validator(mode='after')
    def require_one_field(self):
        if self.correct_count is None and self.wrong_count is None:
            raise ValueError("Provide correct_count and/or wrong_count")
        return self


class ManualResultRequest(BaseModel):
    """Result typed in by an operator for a printed variant."""
    unique_number: str = Field(..., min_length=1, max_length=10)
    student_id: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    correct_count: int = Field(..., ge=0)
    center_id: Optional[int] = Field(None, ge=1)
