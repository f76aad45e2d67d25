"""
Persistence for generated tests, variants and scanned grades.

These helpers never commit: callers own the transaction so a whole
generation (or a grade plus its ledger row) lands atomically.
"""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import NotFoundError
from ..models.generated_test import GeneratedTest, GeneratedTestVariant
from ..models.results import ScannedGrade
from ..schemas.snapshot import QuestionSnapshot, dump_snapshot

logger = logging.getLogger(__name__)


# =============================================================================
# Generated tests
# =============================================================================

async def create_generated_test(db: AsyncSession, **fields) -> GeneratedTest:
    """
    Add a generated test row and flush it so it has an id.

    Args:
        db: Database session
        **fields: Column values for GeneratedTest

    Returns:
        The pending GeneratedTest
    """
    generated_test = GeneratedTest(**fields)
    db.add(generated_test)
    await db.flush()
    return generated_test


async def get_generated_test(
    db: AsyncSession,
    test_id: int,
    with_variants: bool = False,
) -> GeneratedTest:
    """Get a generated test by id. Raises NotFoundError if missing."""
    query = select(GeneratedTest).where(GeneratedTest.id == test_id)
    if with_variants:
        query = query.options(selectinload(GeneratedTest.variants))
    result = await db.execute(query)
    generated_test = result.scalar_one_or_none()
    if generated_test is None:
        raise NotFoundError(f"Generated test {test_id} not found")
    return generated_test


async def list_generated_tests(
    db: AsyncSession,
    teacher_id: Optional[int] = None,
    subject_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[GeneratedTest]:
    """List generated tests, newest first."""
    query = select(GeneratedTest).order_by(GeneratedTest.created_at.desc(), GeneratedTest.id.desc())
    if teacher_id is not None:
        query = query.where(GeneratedTest.teacher_id == teacher_id)
    if subject_id is not None:
        query = query.where(GeneratedTest.subject_id == subject_id)
    result = await db.execute(query.limit(limit).offset(offset))
    return list(result.scalars().all())


async def delete_generated_test(db: AsyncSession, generated_test: GeneratedTest) -> None:
    """Delete a generated test with its variants and their scanned grades."""
    result = await db.execute(
        select(GeneratedTest)
        .options(
            selectinload(GeneratedTest.variants).selectinload(GeneratedTestVariant.scanned_grades)
        )
        .where(GeneratedTest.id == generated_test.id)
    )
    loaded = result.scalar_one()
    await db.delete(loaded)
    await db.commit()
    logger.info(f"Deleted generated test {generated_test.id}")


# =============================================================================
# Variants
# =============================================================================

async def unique_number_exists(db: AsyncSession, unique_number: str) -> bool:
    result = await db.execute(
        select(func.count()).select_from(GeneratedTestVariant).where(
            GeneratedTestVariant.unique_number == unique_number
        )
    )
    return result.scalar_one() > 0


async def add_variant(
    db: AsyncSession,
    generated_test: GeneratedTest,
    variant_number: int,
    unique_number: str,
    questions: Sequence[QuestionSnapshot],
) -> GeneratedTestVariant:
    """
    Insert a variant inside a SAVEPOINT.

    A unique_number collision raises IntegrityError and only the savepoint
    is rolled back, so the caller can retry with a fresh number without
    losing the rest of the batch.
    """
    variant = GeneratedTestVariant(
        generated_test_id=generated_test.id,
        variant_number=variant_number,
        unique_number=unique_number,
        questions_data=dump_snapshot(questions),
    )
    async with db.begin_nested():
        db.add(variant)
        await db.flush()
    return variant


async def get_variant_by_unique_number(db: AsyncSession, unique_number: str) -> GeneratedTestVariant:
    """Look up a variant by its printed code. Raises NotFoundError if missing."""
    result = await db.execute(
        select(GeneratedTestVariant)
        .options(selectinload(GeneratedTestVariant.generated_test))
        .where(GeneratedTestVariant.unique_number == unique_number)
    )
    variant = result.scalar_one_or_none()
    if variant is None:
        raise NotFoundError(f"No variant with unique number {unique_number}")
    return variant


async def list_variants(db: AsyncSession, test_id: int) -> List[GeneratedTestVariant]:
    result = await db.execute(
        select(GeneratedTestVariant)
        .where(GeneratedTestVariant.generated_test_id == test_id)
        .order_by(GeneratedTestVariant.variant_number)
    )
    return list(result.scalars().all())


# =============================================================================
# Scanned grades
# =============================================================================

async def add_scanned_grade(
    db: AsyncSession,
    variant: GeneratedTestVariant,
    answers: list,
    result: dict,
    source: str = "scan",
    student_id: Optional[int] = None,
    center_id: Optional[int] = None,
) -> ScannedGrade:
    """Append a scanned grade. The caller commits."""
    scanned = ScannedGrade(
        variant_id=variant.id,
        answers=list(answers),
        result=result,
        source=source,
        student_id=student_id,
        center_id=center_id,
    )
    db.add(scanned)
    await db.flush()
    return scanned


async def list_scanned_grades(db: AsyncSession, variant_id: int) -> List[ScannedGrade]:
    result = await db.execute(
        select(ScannedGrade)
        .where(ScannedGrade.variant_id == variant_id)
        .order_by(ScannedGrade.created_at, ScannedGrade.id)
    )
    return list(result.scalars().all())
