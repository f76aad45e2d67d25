"""
Variant generator.

Builds N independently shuffled variants of a test from a subject's question
pool and persists them, together with their GeneratedTest, in one
transaction. Randomness and time are injected so generation is reproducible
under test.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import (
    InsufficientPoolError,
    InvalidRequestError,
    NotFoundError,
    UniqueNumberConflictError,
)
from ..models.generated_test import GeneratedTest, GeneratedTestVariant
from ..models.question_bank import QuestionType
from ..schemas.snapshot import QuestionSnapshot
from . import variant_store
from .question_bank import QuestionBankAccessor

logger = logging.getLogger(__name__)

UNIQUE_NUMBER_LENGTH = 10


@dataclass
class GeneratedBatch:
    """A persisted generated test with its variants in variant order."""
    generated_test: GeneratedTest
    variants: List[GeneratedTestVariant] = field(default_factory=list)


def generate_unique_number(rng: random.Random, clock: Callable[[], float] = time.time) -> str:
    """
    Candidate printed code: the last 7 digits of the clock in epoch
    milliseconds followed by a 3-digit random suffix, zero-padded to 10.
    """
    millis = str(int(clock() * 1000))[-7:]
    suffix = f"{rng.randrange(1000):03d}"
    return (millis + suffix).zfill(UNIQUE_NUMBER_LENGTH)


def shuffle_options(question: QuestionSnapshot, rng: random.Random) -> QuestionSnapshot:
    """Shuffle a multiple-choice question's options; other types keep bank order."""
    if question.type != QuestionType.MULTIPLE_CHOICE or len(question.options) <= 1:
        return question
    options = list(question.options)
    rng.shuffle(options)
    return question.model_copy(update={"options": tuple(options)})


def build_variant_questions(
    pool: Sequence[QuestionSnapshot],
    question_count: int,
    rng: random.Random,
) -> List[QuestionSnapshot]:
    """Pick question_count distinct questions in random order and shuffle their options."""
    candidates = list(pool)
    rng.shuffle(candidates)
    return [shuffle_options(q, rng) for q in candidates[:question_count]]


async def _add_with_fresh_number(
    db: AsyncSession,
    generated_test: GeneratedTest,
    variant_number: int,
    questions: Sequence[QuestionSnapshot],
    reserved: Set[str],
    rng: random.Random,
    clock: Callable[[], float],
) -> GeneratedTestVariant:
    max_attempts = settings.unique_number_max_attempts

    for attempt in range(1, max_attempts + 1):
        candidate = generate_unique_number(rng, clock)

        if candidate in reserved or await variant_store.unique_number_exists(db, candidate):
            logger.warning(
                f"Unique number {candidate} already taken "
                f"(variant {variant_number}, attempt {attempt}/{max_attempts})"
            )
            continue

        try:
            variant = await variant_store.add_variant(
                db, generated_test, variant_number, candidate, questions
            )
        except IntegrityError:
            # Another request claimed the number between check and insert
            logger.warning(f"Unique number {candidate} collided on insert, regenerating")
            continue

        reserved.add(candidate)
        return variant

    raise UniqueNumberConflictError(
        f"Could not allocate a unique number for variant {variant_number} "
        f"after {max_attempts} attempts"
    )


async def generate_test(
    db: AsyncSession,
    bank: QuestionBankAccessor,
    *,
    subject_id: int,
    question_count: int,
    variant_count: int,
    teacher_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    time_limit: Optional[int] = None,
    difficulty: str = "mixed",
    include_answers: bool = False,
    show_title_sheet: bool = True,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], float]] = None,
) -> GeneratedBatch:
    """
    Generate and persist a test with variant_count shuffled variants.

    Args:
        db: Database session
        bank: Question bank accessor for the subject
        subject_id: Subject to draw questions from
        question_count: Questions per variant
        variant_count: Number of variants to produce
        teacher_id: Owning teacher
        rng: Random source (defaults to the OS entropy source)
        clock: Returns epoch seconds (defaults to time.time)

    Returns:
        GeneratedBatch with the committed test and its variants

    Raises:
        InvalidRequestError: counts out of range
        NotFoundError: unknown subject
        InsufficientPoolError: pool empty or smaller than question_count
        UniqueNumberConflictError: code allocation exhausted its retries
    """
    if question_count <= 0:
        raise InvalidRequestError("question_count must be greater than 0")
    if variant_count <= 0:
        raise InvalidRequestError("variant_count must be greater than 0")
    if variant_count > settings.max_variants_per_request:
        raise InvalidRequestError(
            f"variant_count must not exceed {settings.max_variants_per_request}"
        )
    if time_limit is not None and time_limit <= 0:
        raise InvalidRequestError("time_limit must be greater than 0")

    rng = rng or random.SystemRandom()
    clock = clock or time.time

    subject = await bank.get_subject(subject_id)
    if subject is None:
        raise NotFoundError(f"Subject {subject_id} not found")

    pool = await bank.list_questions(subject_id)
    if not pool or len(pool) < question_count:
        raise InsufficientPoolError(len(pool), question_count)

    logger.info(
        f"Generating {variant_count} variants x {question_count} questions "
        f"for subject {subject_id} (pool of {len(pool)})"
    )

    try:
        generated_test = await variant_store.create_generated_test(
            db,
            title=title or f"{subject.name} test",
            description=description,
            teacher_id=teacher_id,
            subject_id=subject.id,
            subject_name=subject.name,
            variant_count=variant_count,
            question_count=question_count,
            time_limit=time_limit or settings.default_time_limit,
            difficulty=difficulty or "mixed",
            include_answers=include_answers,
            show_title_sheet=show_title_sheet,
        )

        reserved: Set[str] = set()
        variants = []
        for variant_number in range(1, variant_count + 1):
            questions = build_variant_questions(pool, question_count, rng)
            variant = await _add_with_fresh_number(
                db, generated_test, variant_number, questions, reserved, rng, clock
            )
            variants.append(variant)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Generated test {generated_test.id}: "
        f"{', '.join(v.unique_number for v in variants)}"
    )
    return GeneratedBatch(generated_test=generated_test, variants=variants)
