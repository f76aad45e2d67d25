"""
Question bank accessor.

The generator only needs two reads from the bank: the subject (for its name)
and the subject's questions with their options. Keeping them behind an
interface lets the bank live in another service without touching generation.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.question_bank import Subject, Question
from ..schemas.snapshot import OptionSnapshot, QuestionSnapshot

logger = logging.getLogger(__name__)


class QuestionBankAccessor(ABC):
    """Read-only view of a subject question bank."""

    @abstractmethod
    async def get_subject(self, subject_id: int) -> Optional[Subject]:
        """Return the subject, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_questions(self, subject_id: int) -> List[QuestionSnapshot]:
        """Return every question of the subject with options in bank order."""
        pass


class SqlQuestionBank(QuestionBankAccessor):
    """Question bank backed by the subjects/questions/answer_options tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_subject(self, subject_id: int) -> Optional[Subject]:
        result = await self.db.execute(
            select(Subject).where(Subject.id == subject_id)
        )
        return result.scalar_one_or_none()

    async def list_questions(self, subject_id: int) -> List[QuestionSnapshot]:
        result = await self.db.execute(
            select(Question)
            .options(selectinload(Question.options))
            .where(Question.subject_id == subject_id)
            .order_by(Question.order, Question.id)
        )
        questions = result.scalars().all()
        logger.debug(f"Loaded {len(questions)} questions for subject {subject_id}")

        return [
            QuestionSnapshot(
                source_id=q.id,
                text=q.text,
                type=q.type,
                points=q.points if q.points is not None else 1,
                options=tuple(
                    OptionSnapshot(text=o.text, is_correct=bool(o.is_correct), source_id=o.id)
                    for o in sorted(q.options, key=lambda o: (o.order, o.id))
                ),
            )
            for q in questions
        ]
