"""Vocabulary replacement processor."""
import re
from typing import List, Tuple

from ...utils.logger import get_logger

logger = get_logger(__name__)

# Upper bound on re-scans of a single rule
MAX_RESCANS = 32


def apply_vocabulary_replacements(
    text: str,
    replacements: List[Tuple[str, str]],
    case_sensitive: bool = True,
    rescan: bool = False,
) -> str:
    """
    Apply vocabulary replacements to text.

    Replaces all occurrences of 'original' with 'replacement' for each rule.
    Processes rules in order they were defined.

    Args:
        text: The input transcription text
        replacements: List of (original, replacement) tuples
        case_sensitive: Whether to match case-sensitively (default True)
        rescan: Re-apply each rule to the whole string until it stops
            matching, so overlapping occurrences are all replaced. Rules
            whose replacement contains the original are applied once and
            leave text that already reads as the replacement untouched.

    Returns:
        Text with all replacements applied
    """
    if not replacements:
        return text

    result = text
    for original, replacement in replacements:
        if not original:  # Skip empty originals
            continue

        flags = 0 if case_sensitive else re.IGNORECASE
        pattern = re.compile(re.escape(original), flags)
        repeat = rescan and not pattern.search(replacement)
        if rescan and not repeat:
            # Already-replaced occurrences match first and map to themselves
            pattern = re.compile(
                f"{re.escape(replacement)}|{re.escape(original)}", flags
            )

        for _ in range(MAX_RESCANS if repeat else 1):
            updated = pattern.sub(lambda _m: replacement, result)
            if updated == result:
                break
            result = updated

    if result != text:
        logger.debug(f"Applied vocabulary replacements: '{text[:50]}...' -> '{result[:50]}...'")

    return result
