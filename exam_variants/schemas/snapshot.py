"""
Immutable question snapshots stored on each variant.

A variant is graded against exactly what was printed, so the snapshot is a
frozen value rather than a reference to the live question bank. The option
label alphabet lives here too: the renderer prints ``option_label(i)`` and
the grader compares answers against the same function.
"""
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.question_bank import QuestionType


OPTION_LETTERS = "ABCDEF"


def option_label(index: int) -> str:
    """Label printed next to the option at ``index`` (0-based).

    Letters A-F first, then 1-based numerals for longer option lists.
    """
    if index < 0:
        raise ValueError(f"Option index must be non-negative, got {index}")
    if index < len(OPTION_LETTERS):
        return OPTION_LETTERS[index]
    return str(index + 1)


def label_index(label: str) -> Optional[int]:
    """Inverse of option_label. Returns None for labels that map to nothing."""
    label = label.strip().upper()
    if len(label) == 1 and label in OPTION_LETTERS:
        return OPTION_LETTERS.index(label)
    if label.isdigit():
        index = int(label) - 1
        if index >= len(OPTION_LETTERS):
            return index
    return None


class OptionSnapshot(BaseModel):
    """An answer option as it was printed."""

    text: str
    is_correct: bool = False
    source_id: Optional[int] = Field(None, description="AnswerOption id in the bank")

    class Config:
        frozen = True


class QuestionSnapshot(BaseModel):
    """A question as it was printed, options in printed order."""

    source_id: Optional[int] = Field(None, description="Question id in the bank")
    text: str
    type: QuestionType
    points: float = 1
    options: Tuple[OptionSnapshot, ...] = ()

    class Config:
        frozen = True

    @property
    def correct_index(self) -> Optional[int]:
        """Position of the single correct option, None if not auto-gradable."""
        if self.type == QuestionType.ESSAY:
            return None
        correct = [i for i, option in enumerate(self.options) if option.is_correct]
        if len(correct) != 1:
            return None
        return correct[0]

    @property
    def correct_label(self) -> Optional[str]:
        index = self.correct_index
        return None if index is None else option_label(index)


def dump_snapshot(questions: Iterable[QuestionSnapshot]) -> List[dict]:
    """Serialize snapshots for the questions_data JSON column."""
    return [q.model_dump(mode="json") for q in questions]


def load_snapshot(data: Any) -> Tuple[QuestionSnapshot, ...]:
    return tuple(QuestionSnapshot.model_validate(item) for item in (data or []))
