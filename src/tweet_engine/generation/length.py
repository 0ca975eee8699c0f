"""Character budgets and word-boundary truncation."""

DEFAULT_MAX_LENGTH = 280

MAX_LENGTHS = {
    "short": 150,
    "medium": 230,
    "long": 280,
}

# Left dangling at the end of a cut
_TRAILING_CHARS = " \t\r\n,.:;!?-–—"


def max_length_for(tier: str | None) -> int:
    """Character budget for a length tier. No tier means the full 280."""
    if tier is None:
        return DEFAULT_MAX_LENGTH
    return MAX_LENGTHS.get(tier, DEFAULT_MAX_LENGTH)


def truncate_tweet(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Truncate to `max_length` characters, preferring a word boundary.

    Text already within the budget is returned unchanged. Lengths count
    code points, so an emoji or accented letter is one character.
    """
    if len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""

    truncated = text[:max_length]

    # Back up to the last whitespace if that keeps at least 80% of the budget
    last_space = max(truncated.rfind(" "), truncated.rfind("\n"), truncated.rfind("\t"))
    if last_space >= max_length * 0.8:
        truncated = truncated[:last_space]

    return truncated.rstrip(_TRAILING_CHARS)
