"""Page/limit helpers shared by the list endpoints."""
from __future__ import annotations

import math

from flask import current_app

from .errors import BadRequestError


def parse_page_args(args) -> tuple[int, int]:
    """Read ``page`` and ``limit`` from request args, clamped to sane bounds."""
    try:
        page = max(1, int(args.get("page", 1)))
        limit = int(args.get("limit", current_app.config["DEFAULT_PAGE_SIZE"]))
    except (TypeError, ValueError) as exc:
        raise BadRequestError("page and limit must be integers", error="invalid_query") from exc
    limit = min(current_app.config["MAX_PAGE_SIZE"], max(1, limit))
    return page, limit


def paginate(query, page: int = 1, limit: int | None = None, serialize=None) -> dict[str, object]:
    limit = limit or current_app.config["DEFAULT_PAGE_SIZE"]
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    serialize = serialize or (lambda row: row.to_dict())
    return {
        "results": [serialize(row) for row in rows],
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total_results": total,
    }


def apply_sort(query, model, sort_by: str | None, allowed: dict[str, str], default: str):
    """Order ``query`` by a ``field,-field`` string.

    ``allowed`` maps public field names to model attribute names; unknown
    fields are rejected.
    """
    clauses = []
    for field in (sort_by or default).split(","):
        field = field.strip()
        if not field:
            continue
        descending = field.startswith("-")
        name = field.lstrip("-")
        if name not in allowed:
            raise BadRequestError(f"Cannot sort by {name!r}", error="invalid_query")
        column = getattr(model, allowed[name])
        clauses.append(column.desc() if descending else column.asc())
    return query.order_by(*clauses)


def int_arg(args, name: str) -> int:
    try:
        return int(args[name])
    except (TypeError, ValueError) as exc:
        raise BadRequestError(f"{name} must be an integer", error="invalid_query") from exc
