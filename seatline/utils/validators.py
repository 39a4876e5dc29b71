"""Custom validation utilities."""

import json

MAX_OCCUPANT_NAME_LENGTH = 120


def parse_occupant_names(raw: str | list | None) -> list[str]:
    """Parse occupant names from checkout metadata.

    Processor metadata values are strings, so names arrive either as a JSON
    array or as a comma-separated list. Blank entries are dropped.

    Args:
        raw: Raw metadata value or an already-decoded list

    Returns:
        list[str]: Trimmed, non-empty names in their original order
    """
    if raw is None:
        return []

    values: list
    if isinstance(raw, list):
        values = raw
    else:
        text = raw.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                raise ValueError("occupant names are not valid JSON")
            if not isinstance(decoded, list):
                raise ValueError("occupant names must be a list")
            values = decoded
        else:
            values = text.split(",")

    names = [str(v).strip() for v in values if v is not None]
    return [n for n in names if n]


def validate_occupant_names(names: list[str], quantity: int) -> list[str]:
    """Ensure there is exactly one usable name per seat."""
    cleaned = [n.strip() for n in names if n and n.strip()]
    if len(cleaned) != quantity:
        raise ValueError(
            f"expected {quantity} occupant name(s), got {len(cleaned)}"
        )
    too_long = [n for n in cleaned if len(n) > MAX_OCCUPANT_NAME_LENGTH]
    if too_long:
        raise ValueError(f"occupant names must be at most {MAX_OCCUPANT_NAME_LENGTH} characters")
    return cleaned
