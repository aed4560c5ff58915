"""
CampusGate - Query String Screening

Cheap pre-routing screen for obviously hostile query parameters.
Not a substitute for parameterized queries or output encoding; it only
turns away the noisy scanners before they reach a handler.
"""

import re
from typing import Iterable, Optional, Tuple


MAX_KEY_LENGTH = 100
MAX_VALUE_LENGTH = 1000

SUSPICIOUS_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"<script",
        r"javascript:",
        r"on\w+\s*=",
        r"select\s+.*\s+from",
        r"union\s+select",
        r"drop\s+table",
        r"delete\s+from",
        r"insert\s+into",
        r"update\s+.*\s+set",
    )
]


def screen_query_params(params: Iterable[Tuple[str, str]]) -> Optional[str]:
    """
    Check each key/value pair.

    Returns:
        A short reason string for the first offending pair, or None if clean
    """
    for key, value in params:
        if len(key) > MAX_KEY_LENGTH or len(value) > MAX_VALUE_LENGTH:
            return "parameter too long"

        # Scanned as "key=value" so patterns spanning the separator still match
        combined = f"{key}={value}"
        for pattern in SUSPICIOUS_PATTERNS:
            if pattern.search(combined):
                return f"matched {pattern.pattern}"
    return None
