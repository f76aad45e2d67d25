"""
SQLAlchemy ORM models for grading outcomes.

ScannedGrade is the append-only audit trail of every submitted answer sheet.
Result is the ledger row per (unique_number, student) that reporting reads
and that operators may correct.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class ScannedGrade(Base):
    """
    One grading of one variant.

    The result JSON mirrors the grading outcome:
    {
        "total": 10,
        "correct_count": 7,
        "wrong_count": 2,
        "blank_count": 1,
        "score": 70.0,
        "per_question": [{"position": 1, "given": "A", "expected": "A", "status": "correct"}, ...]
    }
    """
    __tablename__ = "scanned_grades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    variant_id = Column(
        Integer, ForeignKey("generated_test_variants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(Integer, nullable=True, index=True)
    center_id = Column(Integer, nullable=True)
    answers = Column(JSON, nullable=False)
    result = Column(JSON, nullable=False)
    source = Column(String(64), nullable=False, default="scan")

    variant = relationship("GeneratedTestVariant", back_populates="scanned_grades")

    def __repr__(self):
        return f"<ScannedGrade(id={self.id}, variant_id={self.variant_id}, source={self.source})>"


class Result(Base):
    __tablename__ = "results"
    __table_args__ = (
        UniqueConstraint("unique_number", "student_id", name="uq_result_unique_number_student"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student_id = Column(Integer, nullable=True, index=True)
    center_id = Column(Integer, nullable=True, index=True)
    unique_number = Column(String(10), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("generated_test_variants.id", ondelete="SET NULL"), nullable=True)
    generated_test_id = Column(Integer, nullable=True)

    subject_id = Column(Integer, nullable=True, index=True)
    subject_name = Column(String(255), nullable=True)
    test_title = Column(String(255), nullable=True)

    total = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    wrong_count = Column(Integer, nullable=False, default=0)
    blank_count = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)
    per_question = Column(JSON, nullable=True)
    source = Column(String(64), nullable=False, default="scan")

    def __repr__(self):
        return (
            f"<Result(id={self.id}, unique_number={self.unique_number}, "
            f"student_id={self.student_id}, {self.correct_count}/{self.total})>"
        )
