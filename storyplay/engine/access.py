"""
Access codes for private stories.
"""

import uuid
from typing import Callable, Optional

CodeNormalization = str  # "exact" | "strip" | "upper"


def normalize_code(code: Optional[str], mode: CodeNormalization = "upper") -> str:
    """
    Normalize an access code before comparing it.

    Modes:
        exact: compare as given
        strip: trim surrounding whitespace
        upper: trim and upper-case (generated codes are upper-case)
    """
    if code is None:
        return ""
    if mode == "exact":
        return code
    if mode == "strip":
        return code.strip()
    if mode == "upper":
        return code.strip().upper()
    raise ValueError(f"Unknown access code normalization: {mode}")


def codes_match(
    submitted: Optional[str], stored: Optional[str], mode: CodeNormalization = "upper"
) -> bool:
    """True if a submitted code opens a story with the stored code."""
    expected = normalize_code(stored, mode)
    if not expected:
        return False
    return normalize_code(submitted, mode) == expected


def generate_code(length: int = 8, exists: Optional[Callable[[str], bool]] = None) -> str:
    """
    Generate an upper-case hex access code.

    Args:
        length: Number of characters
        exists: Optional predicate; codes for which it returns True are skipped
    """
    while True:
        code = uuid.uuid4().hex[:length].upper()
        if exists is None or not exists(code):
            return code
