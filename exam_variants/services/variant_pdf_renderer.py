"""
Printable PDF renderer for generated test variants.

Draws each variant on its own run of A4 pages: header blocks (optionally on
a separate title sheet), then questions in two columns positioned by
page_layout, with the unique number stamped in the footer of every page.
The answer key uses the identical layout and marks the correct options.
"""
import io
import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from ..config import settings
from ..errors import InvalidRequestError
from ..models.generated_test import GeneratedTest, GeneratedTestVariant
from ..models.question_bank import QuestionType
from ..schemas.snapshot import QuestionSnapshot, option_label
from .page_layout import DEFAULT_LAYOUT, LayoutConfig, Placement, block_height, paginate
from .printable_text import PrintableContent, option_content, printable_content

logger = logging.getLogger(__name__)

ELLIPSIS = "..."
CHECK_MARK = "4"  # ZapfDingbats check glyph


def _register_fonts():
    """Register a Unicode font if the host has one, else use Helvetica."""
    regular_font = "Helvetica"
    bold_font = "Helvetica-Bold"

    for i, path in enumerate(settings.pdf_font_paths[:2]):
        if os.path.exists(path):
            try:
                font_name = "VariantFont" if i == 0 else "VariantFontBold"
                pdfmetrics.registerFont(TTFont(font_name, path))
                if i == 0:
                    regular_font = font_name
                else:
                    bold_font = font_name
            except Exception as e:
                logger.warning(f"Failed to register font {path}: {e}")

    return regular_font, bold_font


class VariantPdfRenderer:
    """Render generated test variants to printable PDFs."""

    TITLE_SIZE = 16
    TEXT_SIZE = 11
    OPTION_SIZE = 10
    FOOTER_SIZE = 8

    def __init__(self, config: LayoutConfig = DEFAULT_LAYOUT, brand: Optional[str] = None):
        self.config = config
        self.brand = brand or settings.brand_name
        self.regular_font, self.bold_font = _register_fonts()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def render(
        self,
        generated_test: GeneratedTest,
        variants: Sequence[GeneratedTestVariant],
        answer_key: bool = False,
    ) -> bytes:
        """
        Render the given variants into a single PDF.

        Args:
            generated_test: The owning generated test (title, subject, settings)
            variants: Variants to print, each starting on a new page
            answer_key: Mark correct options instead of printing a blank sheet

        Returns:
            PDF content as bytes
        """
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.config.page_size)
        pdf.setTitle(f"{generated_test.title}{' - answer key' if answer_key else ''}")
        pdf.setAuthor(self.brand)

        date_text = (generated_test.created_at or datetime.utcnow()).strftime("%d.%m.%Y")

        for variant in variants:
            self._draw_variant(pdf, generated_test, variant, date_text, answer_key)

        pdf.save()
        logger.info(
            f"Rendered {len(variants)} variant(s) of test {generated_test.id}"
            f"{' (answer key)' if answer_key else ''}"
        )
        return buffer.getvalue()

    # -------------------------------------------------------------------------
    # Variant pages
    # -------------------------------------------------------------------------

    def _draw_variant(
        self,
        pdf: canvas.Canvas,
        generated_test: GeneratedTest,
        variant: GeneratedTestVariant,
        date_text: str,
        answer_key: bool,
    ):
        questions = variant.questions
        heights = [block_height(q, self.config) for q in questions]

        if generated_test.show_title_sheet:
            self._draw_title_sheet(pdf, generated_test, variant, date_text, answer_key)
            self._finish_page(pdf, variant, date_text)
            first_top = self.config.continuation_top
            self._draw_running_header(pdf, generated_test, variant)
        else:
            first_top = self._draw_header_blocks(pdf, generated_test, variant, date_text, answer_key)

        placements = paginate(heights, self.config, first_top)
        current_page = 0
        self._draw_column_separator(pdf, first_top)

        for placement, question in zip(placements, questions):
            if placement.page != current_page:
                self._finish_page(pdf, variant, date_text)
                current_page = placement.page
                self._draw_running_header(pdf, generated_test, variant)
                self._draw_column_separator(pdf, self.config.continuation_top)
            self._draw_question(pdf, placement, question, answer_key)

        self._finish_page(pdf, variant, date_text)

    def _finish_page(self, pdf: canvas.Canvas, variant: GeneratedTestVariant, date_text: str):
        footer = f"{self.brand} • {date_text} • Variant: {variant.unique_number}"
        pdf.setFont(self.regular_font, self.FOOTER_SIZE)
        pdf.setFillColor(colors.grey)
        pdf.drawCentredString(self.config.page_width / 2, 30, footer)
        pdf.setFillColor(colors.black)
        pdf.showPage()

    def _y(self, top: float) -> float:
        """Convert a distance from the top edge to a reportlab y coordinate."""
        return self.config.page_height - top

    def _draw_running_header(
        self,
        pdf: canvas.Canvas,
        generated_test: GeneratedTest,
        variant: GeneratedTestVariant,
    ):
        margin = self.config.margin
        pdf.setFont(self.regular_font, self.OPTION_SIZE)
        pdf.drawString(margin, self._y(margin), self._fit(generated_test.title, self.regular_font, self.OPTION_SIZE, 300))
        pdf.drawRightString(
            self.config.page_width - margin,
            self._y(margin),
            f"Variant {variant.variant_number}  #{variant.unique_number}",
        )

    def _draw_header_blocks(
        self,
        pdf: canvas.Canvas,
        generated_test: GeneratedTest,
        variant: GeneratedTestVariant,
        date_text: str,
        answer_key: bool,
    ) -> float:
        """Header, metadata and student-info blocks at the top of the first page.

        Returns the top offset where questions may start.
        """
        margin = self.config.margin
        right = self.config.page_width - margin
        top = margin + 10

        title = generated_test.title + (" - Answer key" if answer_key else "")
        pdf.setFont(self.bold_font, self.TITLE_SIZE)
        pdf.drawString(margin, self._y(top), self._fit(title, self.bold_font, self.TITLE_SIZE, 330))
        pdf.setFont(self.bold_font, self.TEXT_SIZE)
        pdf.drawRightString(right, self._y(top), f"Variant {variant.variant_number}")
        pdf.setFont(self.regular_font, self.TEXT_SIZE)
        pdf.drawRightString(right, self._y(top + 14), f"#{variant.unique_number}")

        top += 34
        pdf.setFont(self.regular_font, self.OPTION_SIZE)
        meta = (
            f"Subject: {generated_test.subject_name}    "
            f"Time: {generated_test.time_limit} min    "
            f"Questions: {generated_test.question_count}    "
            f"Date: {date_text}"
        )
        pdf.drawString(margin, self._y(top), self._fit(meta, self.regular_font, self.OPTION_SIZE, right - margin))

        top += 20
        pdf.drawString(
            margin,
            self._y(top),
            "Name: ______________________    Group: __________    "
            f"Variant: {variant.variant_number}",
        )

        top += 12
        pdf.setStrokeColor(colors.black)
        pdf.line(margin, self._y(top), right, self._y(top))
        return top + 20

    def _draw_title_sheet(
        self,
        pdf: canvas.Canvas,
        generated_test: GeneratedTest,
        variant: GeneratedTestVariant,
        date_text: str,
        answer_key: bool,
    ):
        width = self.config.page_width
        margin = self.config.margin
        center = width / 2

        top = 150
        title = generated_test.title + (" - Answer key" if answer_key else "")
        pdf.setFont(self.bold_font, 22)
        pdf.drawCentredString(center, self._y(top), self._fit(title, self.bold_font, 22, width - 2 * margin))

        top += 40
        pdf.setFont(self.bold_font, 18)
        pdf.drawCentredString(center, self._y(top), f"Variant {variant.variant_number}")
        top += 26
        pdf.setFont(self.regular_font, 13)
        pdf.drawCentredString(center, self._y(top), f"Unique ID: #{variant.unique_number}")

        # Info box
        top += 40
        box_left = margin + 60
        box_width = width - 2 * (margin + 60)
        rows = [
            ("Subject", generated_test.subject_name),
            ("Time", f"{generated_test.time_limit} min"),
            ("Questions", str(generated_test.question_count)),
            ("Date", date_text),
        ]
        box_height = 22 * len(rows) + 16
        pdf.setStrokeColor(colors.black)
        pdf.rect(box_left, self._y(top + box_height), box_width, box_height)
        row_top = top + 24
        for label, value in rows:
            pdf.setFont(self.bold_font, self.TEXT_SIZE)
            pdf.drawString(box_left + 16, self._y(row_top), f"{label}:")
            pdf.setFont(self.regular_font, self.TEXT_SIZE)
            pdf.drawString(
                box_left + 110,
                self._y(row_top),
                self._fit(value, self.regular_font, self.TEXT_SIZE, box_width - 130),
            )
            row_top += 22

        # Student info
        top += box_height + 50
        pdf.setFont(self.regular_font, self.TEXT_SIZE)
        for line in (
            "Full name: ________________________________________",
            "Group: ____________________",
            f"Variant: {variant.variant_number}",
        ):
            pdf.drawString(box_left, self._y(top), line)
            top += 28

        # Instructions
        top += 20
        pdf.setFont(self.bold_font, self.TEXT_SIZE)
        pdf.drawString(box_left, self._y(top), "Instructions")
        pdf.setFont(self.regular_font, self.OPTION_SIZE)
        for line in (
            "1. Write your name and group before you start.",
            "2. Mark exactly one answer letter per question on the answer sheet.",
            "3. Leave a question blank rather than marking several letters.",
            f"4. You have {generated_test.time_limit} minutes.",
        ):
            top += 16
            pdf.drawString(box_left + 10, self._y(top), line)

    def _draw_column_separator(self, pdf: canvas.Canvas, top: float):
        x = self.config.margin + self.config.column_width + self.config.column_gap / 2
        pdf.setStrokeColor(colors.lightgrey)
        pdf.line(x, self._y(top), x, self._y(self.config.bottom_limit))
        pdf.setStrokeColor(colors.black)

    # -------------------------------------------------------------------------
    # Question blocks
    # -------------------------------------------------------------------------

    def _draw_question(
        self,
        pdf: canvas.Canvas,
        placement: Placement,
        question: QuestionSnapshot,
        answer_key: bool,
    ):
        config = self.config
        x = config.column_x(placement.column)
        width = config.column_width
        content = printable_content(question.text)

        # Question text gets the base height: two lines at most
        text_lines = self._wrap(
            f"{placement.index + 1}. {content.text}", self.bold_font, self.TEXT_SIZE, width, max_lines=2
        )
        pdf.setFont(self.bold_font, self.TEXT_SIZE)
        top = placement.top + self.TEXT_SIZE
        for line in text_lines:
            pdf.drawString(x, self._y(top), line)
            top += 14

        top = placement.top + config.base_height
        for image in content.images:
            self._draw_image(pdf, image, x + 10, top - self.TEXT_SIZE, width - 20, config.question_image_height - 20)
            top += config.question_image_height

        if question.type == QuestionType.ESSAY:
            pdf.setFont(self.regular_font, self.OPTION_SIZE)
            pdf.drawString(x + 10, self._y(top), "Answer:")
            pdf.line(x + 55, self._y(top) - 2, x + width, self._y(top) - 2)
            return

        options = [(option_label(i), option_content(o.text), o.is_correct) for i, o in enumerate(question.options)]
        if question.type == QuestionType.TRUE_FALSE and not options:
            options = [("A", PrintableContent("True"), False), ("B", PrintableContent("False"), False)]

        for label, option, is_correct in options:
            marked = answer_key and is_correct
            font = self.bold_font if marked else self.regular_font
            line = self._fit(f"{label}) {option.text}", font, self.OPTION_SIZE, width - 10)
            if marked:
                pdf.setFont("ZapfDingbats", self.OPTION_SIZE)
                pdf.drawString(x - 2, self._y(top), CHECK_MARK)
            pdf.setFont(font, self.OPTION_SIZE)
            pdf.drawString(x + 10, self._y(top), line)
            top += config.line_height
            for image in option.images:
                self._draw_image(pdf, image, x + 20, top - self.OPTION_SIZE, width - 30, config.option_image_height - 5)
                top += config.option_image_height

    def _draw_image(self, pdf: canvas.Canvas, data: bytes, x: float, top: float, max_width: float, max_height: float):
        """Draw an embedded image scaled into the box whose top-left corner is (x, top)."""
        try:
            image = ImageReader(io.BytesIO(data))
            image_width, image_height = image.getSize()
            scale = min(max_width / image_width, max_height / image_height, 1)
            width, height = image_width * scale, image_height * scale
            pdf.drawImage(image, x, self._y(top + height), width=width, height=height, mask="auto")
        except Exception as e:
            logger.warning(f"Failed to draw embedded image: {e}")
            pdf.setFont(self.regular_font, self.FOOTER_SIZE)
            pdf.drawString(x, self._y(top + self.FOOTER_SIZE), "[image]")

    # -------------------------------------------------------------------------
    # Text fitting
    # -------------------------------------------------------------------------

    def _fit(self, text: str, font: str, size: float, width: float) -> str:
        """Truncate text to a single line of the given width."""
        text = " ".join(str(text).split())
        if pdfmetrics.stringWidth(text, font, size) <= width:
            return text
        while text and pdfmetrics.stringWidth(text + ELLIPSIS, font, size) > width:
            text = text[:-1]
        return text.rstrip() + ELLIPSIS

    def _wrap(self, text: str, font: str, size: float, width: float, max_lines: int) -> List[str]:
        """Greedy word wrap, truncating the last line when text runs over."""
        words = str(text).split()
        lines: List[str] = []
        current = ""
        for i, word in enumerate(words):
            candidate = f"{current} {word}".strip()
            if pdfmetrics.stringWidth(candidate, font, size) <= width or not current:
                current = candidate
                continue
            lines.append(current)
            current = word
            if len(lines) == max_lines - 1:
                rest = " ".join(words[i:])
                if pdfmetrics.stringWidth(rest, font, size) > width:
                    logger.warning(f"Question text truncated: {text[:40]!r}")
                lines.append(self._fit(rest, font, size, width))
                return lines
        if current:
            lines.append(self._fit(current, font, size, width))
        return lines


# Singleton instance
_renderer: Optional[VariantPdfRenderer] = None


def get_variant_pdf_renderer() -> VariantPdfRenderer:
    """Get or create the renderer singleton."""
    global _renderer
    if _renderer is None:
        _renderer = VariantPdfRenderer()
    return _renderer


async def render_variants_pdf(
    generated_test: GeneratedTest,
    variants: Sequence[GeneratedTestVariant],
    answer_key: bool = False,
) -> bytes:
    """
    Convenience function to render printable variants or their answer key.

    Raises:
        InvalidRequestError: answer key requested for a test generated
            without include_answers
    """
    if answer_key and not generated_test.include_answers:
        raise InvalidRequestError("This test was generated without an answer key")
    if not variants:
        raise InvalidRequestError("No variants to render")
    return get_variant_pdf_renderer().render(generated_test, variants, answer_key=answer_key)
