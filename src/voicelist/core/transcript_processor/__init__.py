from .normalizer import (
    DEFAULT_CORRECTIONS,
    TextNormalizer,
    normalize_final,
    normalize_interim,
)
from .vocabulary_processor import apply_vocabulary_replacements

__all__ = [
    "DEFAULT_CORRECTIONS",
    "TextNormalizer",
    "normalize_final",
    "normalize_interim",
    "apply_vocabulary_replacements",
]
