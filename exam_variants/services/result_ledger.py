"""
Result ledger.

One row per (unique_number, student). Rows are written by scan grading and
by manual entry, and can be corrected by operators afterwards.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import InvalidRequestError, NotFoundError
from ..models.generated_test import GeneratedTestVariant
from ..models.results import Result
from ..schemas.grading import GradeResult
from ..schemas.results import ResultFilters
from . import variant_store

logger = logging.getLogger(__name__)


def score_percentage(correct: int, total: int) -> float:
    """Percentage of correct answers, rounded to one decimal."""
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 1)


def _validate_counts(total: int, correct: int, wrong: int) -> None:
    if total < 0 or correct < 0 or wrong < 0:
        raise InvalidRequestError("Counts must not be negative")
    if correct > total:
        raise InvalidRequestError(f"correct_count ({correct}) exceeds total ({total})")
    if correct + wrong > total:
        raise InvalidRequestError(
            f"correct_count + wrong_count ({correct + wrong}) exceeds total ({total})"
        )


def _apply_counts(row: Result, total: int, correct: int, wrong: int) -> None:
    row.total = total
    row.correct_count = correct
    row.wrong_count = wrong
    row.blank_count = total - correct - wrong
    row.score = score_percentage(correct, total)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_variant(row: Result, variant: GeneratedTestVariant) -> None:
    generated_test = variant.generated_test
    row.variant_id = variant.id
    row.generated_test_id = variant.generated_test_id
    row.subject_id = generated_test.subject_id if generated_test else None
    row.subject_name = generated_test.subject_name if generated_test else None
    row.test_title = generated_test.title if generated_test else None


async def _find_row(db: AsyncSession, unique_number: str, student_id: int) -> Optional[Result]:
    result = await db.execute(
        select(Result).where(
            Result.unique_number == unique_number,
            Result.student_id == student_id,
        )
    )
    return result.scalar_one_or_none()


async def _upsert_row(
    db: AsyncSession,
    variant: GeneratedTestVariant,
    student_id: int,
    center_id: Optional[int],
    source: str,
    total: int,
    correct: int,
    wrong: int,
    per_question: Optional[list],
) -> Result:
    """Update the (unique_number, student) row in place or insert it."""
    row = await _find_row(db, variant.unique_number, student_id)

    if row is None:
        row = Result(student_id=student_id, center_id=center_id, unique_number=variant.unique_number)
        _apply_variant(row, variant)
        _apply_counts(row, total, correct, wrong)
        row.per_question = per_question
        row.source = source
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
            return row
        except IntegrityError:
            # Concurrent writer inserted the same key; fall through to update
            row = await _find_row(db, variant.unique_number, student_id)
            if row is None:
                raise

    # The code may have been reissued after its old test was deleted
    _apply_variant(row, variant)
    if center_id is not None:
        row.center_id = center_id
    _apply_counts(row, total, correct, wrong)
    row.per_question = per_question
    row.source = source
    await db.flush()
    return row


async def record_graded_result(
    db: AsyncSession,
    variant: GeneratedTestVariant,
    result: GradeResult,
    student_id: int,
    center_id: Optional[int] = None,
    source: str = "scan",
) -> Result:
    """Upsert the ledger row from a scan grading. The caller commits."""
    return await _upsert_row(
        db,
        variant,
        student_id=student_id,
        center_id=center_id,
        source=source,
        total=result.total,
        correct=result.correct_count,
        wrong=result.wrong_count,
        per_question=[q.model_dump(mode="json") for q in result.per_question],
    )


async def list_results(db: AsyncSession, filters: ResultFilters) -> Tuple[List[Result], int]:
    """
    List ledger rows matching the filters, newest first.

    Returns:
        (rows for the requested page, total matching rows)
    """
    conditions = []
    if filters.student_id is not None:
        conditions.append(Result.student_id == filters.student_id)
    if filters.unique_number:
        conditions.append(Result.unique_number == filters.unique_number)
    if filters.center_id is not None:
        conditions.append(Result.center_id == filters.center_id)
    if filters.subject_id is not None:
        conditions.append(Result.subject_id == filters.subject_id)
    if filters.q:
        pattern = f"%{escape_like(filters.q.strip())}%"
        conditions.append(
            or_(
                Result.unique_number.ilike(pattern, escape="\\"),
                Result.test_title.ilike(pattern, escape="\\"),
                Result.subject_name.ilike(pattern, escape="\\"),
            )
        )
    if filters.date_from is not None:
        conditions.append(Result.created_at >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(Result.created_at <= filters.date_to)

    count_result = await db.execute(
        select(func.count()).select_from(Result).where(*conditions)
    )
    total = count_result.scalar_one()

    rows_result = await db.execute(
        select(Result)
        .where(*conditions)
        .order_by(Result.created_at.desc(), Result.id.desc())
        .limit(filters.page_size)
        .offset((filters.page - 1) * filters.page_size)
    )
    return list(rows_result.scalars().all()), total


async def get_result(db: AsyncSession, result_id: int) -> Result:
    result = await db.execute(select(Result).where(Result.id == result_id))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(f"Result {result_id} not found")
    return row


async def update_result_counts(
    db: AsyncSession,
    result_id: int,
    correct_count: Optional[int] = None,
    wrong_count: Optional[int] = None,
) -> Result:
    """
    Correct the counts of a ledger row. Blank count and score are derived.

    Raises:
        NotFoundError: unknown result id
        InvalidRequestError: counts negative or exceeding the total
    """
    row = await get_result(db, result_id)

    correct = row.correct_count if correct_count is None else correct_count
    wrong = row.wrong_count if wrong_count is None else wrong_count
    _validate_counts(row.total, correct, wrong)

    _apply_counts(row, row.total, correct, wrong)
    await db.commit()
    await db.refresh(row)

    logger.info(f"Result {result_id} corrected to {correct}/{row.total} (wrong {wrong})")
    return row


async def upsert_manual_result(
    db: AsyncSession,
    unique_number: str,
    student_id: int,
    total: int,
    correct_count: int,
    center_id: Optional[int] = None,
) -> Result:
    """
    Record a manually entered result for a printed variant.

    Idempotent per (unique_number, student_id): a second call updates the
    existing row. Every call also appends a 'manual' scanned grade so the
    audit trail shows who changed what.

    Raises:
        NotFoundError: no variant has that unique number
        InvalidRequestError: counts out of range
    """
    _validate_counts(total, correct_count, 0)
    variant = await variant_store.get_variant_by_unique_number(db, unique_number)
    wrong = total - correct_count

    try:
        row = await _upsert_row(
            db,
            variant,
            student_id=student_id,
            center_id=center_id,
            source="manual",
            total=total,
            correct=correct_count,
            wrong=wrong,
            per_question=None,
        )
        await variant_store.add_scanned_grade(
            db,
            variant,
            answers=[],
            result={
                "total": total,
                "correct_count": correct_count,
                "wrong_count": wrong,
                "blank_count": 0,
                "score": score_percentage(correct_count, total),
                "per_question": [],
            },
            source="manual",
            student_id=student_id,
            center_id=center_id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(row)
    logger.info(f"Manual result for {unique_number} / student {student_id}: {correct_count}/{total}")
    return row
