"""
Transcript normalization.

Final text goes through the full pipeline:
1. Collapse whitespace and trim
2. Apply the correction table (case-insensitive, each rule re-scanned
   until it no longer matches)
3. Capitalize the first character

Terminal punctuation is left exactly as the recognizer produced it.
Interim text only gets step 1, since it is replaced moments later.

Steps 1-2 repeat until the text is stable, which makes the final pipeline
idempotent: normalize(normalize(x)) == normalize(x).
"""

import re
from typing import Iterable, List, Optional, Tuple

from ...utils.logger import get_logger
from .vocabulary_processor import apply_vocabulary_replacements

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Upper bound on whitespace/correction rounds; small tables settle in 1-2
MAX_PASSES = 8

# Ordered: earlier rules may expose matches for later ones.
DEFAULT_CORRECTIONS: List[Tuple[str, str]] = [
    # Punctuation spacing (terminal marks are left alone)
    (" ,", ","),
    (" ;", ";"),
    (" :", ":"),
    # Units that recognizers spell out
    ("ki lô gam", "kg"),
    ("ki lô", "kg"),
    # Number words inside a phrase
    (" một ", " 1 "),
    (" hai ", " 2 "),
    (" ba ", " 3 "),
    (" bốn ", " 4 "),
    (" năm ", " 5 "),
]


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def capitalize_first(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]


class TextNormalizer:
    """Deterministic, side-effect-free transcript cleanup."""

    def __init__(self, corrections: Optional[Iterable[Tuple[str, str]]] = None):
        if corrections is None:
            corrections = DEFAULT_CORRECTIONS
        self.corrections: List[Tuple[str, str]] = [
            (original, replacement) for original, replacement in corrections if original
        ]

    @classmethod
    def with_vocabulary(
        cls, vocabulary: Iterable[Tuple[str, str]]
    ) -> "TextNormalizer":
        """Default table followed by user-defined replacements."""
        return cls(list(DEFAULT_CORRECTIONS) + [tuple(entry) for entry in vocabulary])

    def normalize(self, text: str) -> str:
        if not text:
            return ""

        processed = text
        for _ in range(MAX_PASSES):
            updated = apply_vocabulary_replacements(
                collapse_whitespace(processed),
                self.corrections,
                case_sensitive=False,
                rescan=True,
            )
            if updated == processed:
                break
            processed = updated
        else:
            logger.warning(f"Correction table did not settle for '{text[:50]}'")
            processed = collapse_whitespace(processed)

        return capitalize_first(processed)

    def normalize_interim(self, text: str) -> str:
        if not text:
            return ""
        return collapse_whitespace(text)


_default_normalizer = TextNormalizer()


def normalize_final(text: str) -> str:
    return _default_normalizer.normalize(text)


def normalize_interim(text: str) -> str:
    return _default_normalizer.normalize_interim(text)
