# office_api/common/paging.py
import math

from flask import request
from sqlalchemy import or_

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100


def page_limit(default_size=DEFAULT_SIZE, max_size=MAX_SIZE):
    """
    page (default 1) and per_page, with limit/size accepted as aliases.
    per_page is clamped to [1, max_size].
    """
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except (TypeError, ValueError):
        page = DEFAULT_PAGE
    raw = request.args.get("per_page") or request.args.get("limit") or request.args.get("size")
    try:
        size = int(raw) if raw is not None else default_size
        size = max(1, min(size, max_size))
    except (TypeError, ValueError):
        size = default_size
    return page, size


def paginate(query, default_size=DEFAULT_SIZE, max_size=MAX_SIZE):
    page, size = page_limit(default_size, max_size)
    total = query.count()
    items = query.limit(size).offset((page - 1) * size).all()
    meta = {
        "page": page,
        "per_page": size,
        "total": total,
        "last_page": max(1, math.ceil(total / size)),
    }
    return items, meta


def text_q(*names):
    for n in names or ("search", "q"):
        v = (request.args.get(n) or "").strip()
        if v:
            return v
    return None


def apply_search(query, term, *cols):
    if not term:
        return query
    like = f"%{term.lower()}%"
    return query.filter(or_(*[c.ilike(like) for c in cols]))


def sort_direction(default="desc"):
    v = (request.args.get("sort_order") or default).lower()
    return "asc" if v == "asc" else "desc"
