from __future__ import annotations

import math

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def paginate(query, *, page: int = 1, limit: int = DEFAULT_LIMIT) -> dict:
    """Slice a query and return {"data": [...], "pagination": {...}} with model rows (not dicts)."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_LIMIT), 1), MAX_LIMIT)

    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "data": rows,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }
