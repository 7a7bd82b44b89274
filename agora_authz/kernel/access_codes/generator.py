"""
Access code generation and format rules.
"""

import re
import secrets
from typing import Optional

# Three or more of the same character in a row
_REPEATED = re.compile(r"(.)\1{2,}")
_FORMAT = re.compile(r"^[A-Z0-9]+$")


def normalize_code(raw: Optional[str], min_length: int, max_length: int) -> Optional[str]:
    """
    Canonical form of a submitted code, or None if it is malformed.

    Pure string work; never touches storage.
    """
    if raw is None:
        return None
    code = raw.strip().upper()
    if not (min_length <= len(code) <= max_length):
        return None
    if not _FORMAT.match(code):
        return None
    return code


def has_repeated_run(code: str) -> bool:
    return _REPEATED.search(code) is not None


def has_sequential_run(code: str, run_length: int = 3) -> bool:
    """True for ascending runs such as ABC or 345."""
    for i in range(len(code) - run_length + 1):
        window = code[i:i + run_length]
        same_class = window.isdigit() or window.isalpha()
        if same_class and all(
            ord(window[j + 1]) - ord(window[j]) == 1 for j in range(run_length - 1)
        ):
            return True
    return False


def is_acceptable(code: str) -> bool:
    """Reject low-entropy looking codes."""
    return not has_repeated_run(code) and not has_sequential_run(code)


def generate_candidate(length: int, alphabet: str) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))
