"""
Printable text for question and option content.

Bank content may carry inline LaTeX ($...$ or $$...$$) and embedded
data:image/...;base64 images. The PDF renderer cannot typeset either, so
LaTeX is flattened to Unicode text and images are pulled out as raw bytes
to be drawn below the text. The page layout uses the same split to size
question blocks.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

QUESTION_IMAGE_MAX_BYTES = 1024 * 1024
OPTION_IMAGE_MAX_BYTES = 512 * 1024

IMAGE_PATTERN = re.compile(r"data:image/([^;]+);base64,([A-Za-z0-9+/]+=*)")

LATEX_SYMBOLS = {
    "alpha": "α",
    "beta": "β",
    "gamma": "γ",
    "delta": "δ",
    "pi": "π",
    "theta": "θ",
    "lambda": "λ",
    "mu": "μ",
    "sigma": "σ",
    "omega": "ω",
    "sum": "∑",
    "int": "∫",
    "infty": "∞",
    "pm": "±",
    "times": "×",
    "div": "÷",
    "leq": "≤",
    "geq": "≥",
    "neq": "≠",
    "approx": "≈",
}

_DISPLAY_MATH = re.compile(r"\$\$([^$]+)\$\$")
_INLINE_MATH = re.compile(r"\$([^$]+)\$")
_FRACTION = re.compile(r"\\frac\{([^}]+)\}\{([^}]+)\}")
_SQUARE_ROOT = re.compile(r"\\sqrt\{([^}]+)\}")
_SYMBOL = re.compile(r"\\(" + "|".join(sorted(LATEX_SYMBOLS, key=len, reverse=True)) + r")(?![A-Za-z])")


@dataclass
class PrintableContent:
    text: str
    images: List[bytes] = field(default_factory=list)


def latex_to_text(text: str) -> str:
    """Flatten common LaTeX math to plain Unicode, e.g. $\\frac{1}{2}$ -> (1/2)."""
    text = _DISPLAY_MATH.sub(r"\1", text)
    text = _INLINE_MATH.sub(r"\1", text)
    text = _FRACTION.sub(r"(\1/\2)", text)
    text = _SQUARE_ROOT.sub(r"√(\1)", text)
    text = _SYMBOL.sub(lambda m: LATEX_SYMBOLS[m.group(1)], text)
    text = text.replace("\\{", "").replace("\\}", "")
    return text.replace("\\\\", " ")


def _decode_image(match: "re.Match", max_bytes: int):
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Skipping undecodable embedded image: {e}")
        return None
    if len(data) > max_bytes:
        logger.warning(f"Skipping embedded image of {len(data)} bytes (limit {max_bytes})")
        return None
    return data


def printable_content(text: str, max_image_bytes: int = QUESTION_IMAGE_MAX_BYTES) -> PrintableContent:
    """
    Split raw bank content into printable text and embedded images.

    Images larger than max_image_bytes or not valid base64 are dropped.
    """
    images = []
    for match in IMAGE_PATTERN.finditer(text or ""):
        data = _decode_image(match, max_image_bytes)
        if data is not None:
            images.append(data)

    stripped = IMAGE_PATTERN.sub(" ", text or "")
    return PrintableContent(text=" ".join(latex_to_text(stripped).split()), images=images)


def option_content(text: str) -> PrintableContent:
    return printable_content(text, OPTION_IMAGE_MAX_BYTES)
