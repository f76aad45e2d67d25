"""
Two-column page layout for printed variants.

Each question occupies a fixed-height block computed from its type and
option count. Blocks fill the left column top to bottom, then the right
column, then a new page. Order is never changed and a column is never
revisited once the next one has started.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4

from ..models.question_bank import QuestionType
from ..schemas.snapshot import QuestionSnapshot
from .printable_text import option_content, printable_content


@dataclass(frozen=True)
class LayoutConfig:
    """Geometry of a printed page, in PDF points (origin at the top-left)."""
    page_size: Tuple[float, float] = A4
    margin: float = 50
    column_gap: float = 60
    base_height: float = 40
    line_height: float = 18
    block_padding: float = 35
    question_image_height: float = 100
    option_image_height: float = 45
    true_false_lines: int = 2
    essay_lines: int = 1
    bottom_reserve: float = 80
    continuation_offset: float = 30

    @property
    def page_width(self) -> float:
        return self.page_size[0]

    @property
    def page_height(self) -> float:
        return self.page_size[1]

    @property
    def column_width(self) -> float:
        return (self.page_width - 2 * self.margin - self.column_gap) / 2

    @property
    def bottom_limit(self) -> float:
        """Lowest y (from the top) a block may reach."""
        return self.page_height - self.bottom_reserve

    @property
    def continuation_top(self) -> float:
        """Where the first block sits on a page without header blocks."""
        return self.margin + self.continuation_offset

    def column_x(self, column: int) -> float:
        return self.margin + column * (self.column_width + self.column_gap)


DEFAULT_LAYOUT = LayoutConfig()


@dataclass(frozen=True)
class Placement:
    """Where one question block goes. Page is 0-based within the variant."""
    index: int
    page: int
    column: int
    top: float
    height: float


def answer_lines(question: QuestionSnapshot, config: LayoutConfig = DEFAULT_LAYOUT) -> int:
    if question.type == QuestionType.TRUE_FALSE:
        return config.true_false_lines
    if question.type == QuestionType.ESSAY:
        return config.essay_lines
    return max(len(question.options), 1)


def image_space(question: QuestionSnapshot, config: LayoutConfig = DEFAULT_LAYOUT) -> float:
    """Extra height for images embedded in the question and its options."""
    question_images = len(printable_content(question.text).images)
    options = () if question.type == QuestionType.ESSAY else question.options
    option_images = sum(len(option_content(o.text).images) for o in options)
    return question_images * config.question_image_height + option_images * config.option_image_height


def block_height(question: QuestionSnapshot, config: LayoutConfig = DEFAULT_LAYOUT) -> float:
    return (
        config.base_height
        + answer_lines(question, config) * config.line_height
        + image_space(question, config)
        + config.block_padding
    )


def paginate(
    heights: Sequence[float],
    config: LayoutConfig = DEFAULT_LAYOUT,
    first_top: Optional[float] = None,
) -> List[Placement]:
    """
    Assign each block a page, column and top offset.

    Args:
        heights: Block heights in print order
        config: Page geometry
        first_top: Top of the first column on the first page (below any
            header blocks). Defaults to the continuation top.

    Returns:
        One Placement per block, in the same order
    """
    column_top = config.continuation_top if first_top is None else first_top
    page, column, cursor = 0, 0, column_top
    placements = []

    for index, height in enumerate(heights):
        fresh = cursor == column_top
        if cursor + height > config.bottom_limit and not fresh:
            if column == 0:
                column, cursor = 1, column_top
            else:
                page, column = page + 1, 0
                column_top = config.continuation_top
                cursor = column_top

            # Still too tall for the right column: move on to a new page
            if cursor + height > config.bottom_limit and column == 1 and cursor != config.continuation_top:
                page, column = page + 1, 0
                column_top = config.continuation_top
                cursor = column_top

        placements.append(Placement(index=index, page=page, column=column, top=cursor, height=height))
        cursor += height

    return placements


def page_count(placements: Sequence[Placement]) -> int:
    return placements[-1].page + 1 if placements else 1
