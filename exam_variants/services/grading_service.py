"""
Grading service layer.

Grades digitized answer sheets against the exact variant snapshot that was
printed, stores every grading as a ScannedGrade and, when the student is
known, keeps the ledger Result in step.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import InvalidRequestError
from ..models.generated_test import GeneratedTestVariant
from ..models.results import Result, ScannedGrade
from ..schemas.grading import GradeResult, QuestionGrade
from ..schemas.snapshot import QuestionSnapshot, label_index
from . import result_ledger, variant_store

logger = logging.getLogger(__name__)

BLANK_TOKENS = {"", "-"}


@dataclass
class GradingOutcome:
    """What grade_scanned_answers persisted."""
    variant: GeneratedTestVariant
    scanned_grade: ScannedGrade
    result: GradeResult
    ledger_row: Optional[Result] = None


def normalize_tokens(answers: Any, expected_length: int) -> List[Optional[str]]:
    """
    Validate raw answer tokens and normalize them to upper-case labels.

    Blank sentinels ('-', empty string, None) become None.

    Raises:
        InvalidRequestError: answers is not a list, has the wrong length,
            or contains a token that is not an option label
    """
    if not isinstance(answers, (list, tuple)):
        raise InvalidRequestError("answers must be a list of answer tokens")
    if len(answers) != expected_length:
        raise InvalidRequestError(
            f"Expected {expected_length} answers, got {len(answers)}"
        )

    normalized: List[Optional[str]] = []
    for position, token in enumerate(answers, start=1):
        if token is None:
            normalized.append(None)
            continue
        if not isinstance(token, str):
            raise InvalidRequestError(f"Answer {position} must be a string, got {token!r}")

        cleaned = token.strip().upper()
        if cleaned in BLANK_TOKENS:
            normalized.append(None)
        elif label_index(cleaned) is not None:
            normalized.append(cleaned)
        else:
            raise InvalidRequestError(f"Answer {position} is not a valid option label: {token!r}")

    return normalized


def grade_answers(questions: Sequence[QuestionSnapshot], tokens: Sequence[Optional[str]]) -> GradeResult:
    """
    Pure grading of normalized tokens against a variant snapshot.

    Questions without a single correct option (essays, malformed keys) are
    reported as ungraded and excluded from the total.
    """
    per_question = []
    correct = wrong = blank = 0

    for position, (question, given) in enumerate(zip(questions, tokens), start=1):
        expected = question.correct_label
        if expected is None:
            status = "ungraded"
        elif given is None:
            status = "blank"
            blank += 1
        elif given == expected:
            status = "correct"
            correct += 1
        else:
            status = "wrong"
            wrong += 1
        per_question.append(
            QuestionGrade(position=position, given=given, expected=expected, status=status)
        )

    total = correct + wrong + blank
    return GradeResult(
        total=total,
        correct_count=correct,
        wrong_count=wrong,
        blank_count=blank,
        score=result_ledger.score_percentage(correct, total),
        per_question=per_question,
    )


async def grade_scanned_answers(
    db: AsyncSession,
    unique_number: str,
    answers: Any,
    student_id: Optional[int] = None,
    center_id: Optional[int] = None,
    source: str = "scan",
) -> GradingOutcome:
    """
    Grade a digitized answer sheet and persist the outcome.

    Args:
        db: Database session
        unique_number: Code printed on the variant
        answers: Raw tokens in printed question order
        student_id: Optional student; when set the ledger row is upserted
        center_id: Optional learning center
        source: Tag stored with the scanned grade

    Returns:
        GradingOutcome with the stored ScannedGrade and computed result

    Raises:
        NotFoundError: no variant has that unique number
        InvalidRequestError: malformed answers
    """
    variant = await variant_store.get_variant_by_unique_number(db, unique_number)
    questions = variant.questions

    tokens = normalize_tokens(answers, len(questions))
    result = grade_answers(questions, tokens)

    try:
        scanned = await variant_store.add_scanned_grade(
            db,
            variant,
            answers=list(answers),
            result=result.model_dump(mode="json"),
            source=source,
            student_id=student_id,
            center_id=center_id,
        )
        ledger_row = None
        if student_id is not None:
            ledger_row = await result_ledger.record_graded_result(
                db,
                variant,
                result,
                student_id=student_id,
                center_id=center_id,
                source=source,
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Graded variant {unique_number}: {result.correct_count}/{result.total} "
        f"correct, {result.blank_count} blank"
    )
    return GradingOutcome(variant=variant, scanned_grade=scanned, result=result, ledger_row=ledger_row)
