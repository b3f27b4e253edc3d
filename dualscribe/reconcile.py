"""
Reconciliation of the slower engine's answer against committed text.

Comparison is case-insensitive and ignores surrounding whitespace only.
"Hello world" and " hello WORLD " match; "Hello, world" does not.
"""


def normalize_for_matching(text: str) -> str:
    """
    Case-fold and trim for comparison.

    Examples:
        " Hello World " -> "hello world"
        "Hello, world." -> "hello, world."
    """
    return text.strip().casefold()


def needs_refinement(committed: str, candidate: str) -> bool:
    """
    True if candidate should be published as a refinement of committed.

    Empty candidates never refine.
    """
    if not candidate.strip():
        return False
    return normalize_for_matching(candidate) != normalize_for_matching(committed)
