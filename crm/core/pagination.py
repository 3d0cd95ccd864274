"""Pagination helpers."""


def clamp_page(page: int, limit: int, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Normalize page/limit; an out-of-range limit falls back to the default rather than the bound."""
    if page < 1:
        page = 1
    if limit < 1 or limit > max_limit:
        limit = default_limit
    return page, limit


def skip_for(page: int, limit: int) -> int:
    return (page - 1) * limit
