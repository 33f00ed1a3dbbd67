from __future__ import annotations

from barmap.core.errors import ValidationError

MAX_PAGE_SIZE = 100


def validate_page(skip: int, limit: int) -> None:
    """Reject negative offsets and page sizes outside [1, MAX_PAGE_SIZE]."""
    if skip < 0:
        raise ValidationError("skip must be >= 0", field="skip")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
