"""Parsing helpers for CLI arguments."""

from .errors import InvalidMessageSpec


def _parse_part(part: str) -> list[int]:
    if "-" in part:
        start_str, _, end_str = part.partition("-")
        try:
            start, end = int(start_str), int(end_str)
        except ValueError:
            raise InvalidMessageSpec(f'Invalid range: "{part}"') from None
        if start > end:
            raise InvalidMessageSpec(f'Invalid range: start > end in "{part}"')
        return list(range(start, end + 1))

    try:
        return [int(part)]
    except ValueError:
        raise InvalidMessageSpec(f'Invalid message number: "{part}"') from None


def parse_message_spec(spec: str, count: int) -> list[int]:
    """Parse a message selection like "1,3-4,7" into sorted 0-based indices.

    Message numbers in the spec are 1-based, as shown to the user. Whitespace
    is ignored and duplicates collapse.

    Args:
        spec: Comma-separated numbers and inclusive ranges
        count: Number of messages in the chat

    Returns:
        Sorted, deduplicated 0-based indices

    Raises:
        InvalidMessageSpec: On a bad number, a reversed range, or a message
            number outside 1..count
    """
    parts = [p for p in "".join(spec.split()).split(",") if p]
    numbers = sorted({n for part in parts for n in _parse_part(part)})

    for n in numbers:
        if n < 1 or n > count:
            raise InvalidMessageSpec(f"Message {n} does not exist (chat has {count} messages)")

    return [n - 1 for n in numbers]
