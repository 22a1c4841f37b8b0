import math

from config.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int, int]:
    page = max(page or 1, 1)
    limit = min(max(limit or DEFAULT_PAGE_LIMIT, 1), MAX_PAGE_LIMIT)
    skip = (page - 1) * limit
    return page, limit, skip


def page_envelope(key: str, items: list, total: int, page: int, limit: int) -> dict:
    return {
        key: items,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
        "current_page": page,
    }
