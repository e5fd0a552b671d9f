"""Pagination for admin and history listings."""

from typing import Any, Sequence

from fastapi import Query
from pydantic import BaseModel

MAX_LIMIT = 200


class PageParams(BaseModel):
    limit: int = 50
    offset: int = 0


def page_params(
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
) -> PageParams:
    """FastAPI dependency for ?limit=&offset=."""
    return PageParams(limit=limit, offset=offset)


def paginate(limit: int, offset: int, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def to_page(items: Sequence[Any], params: PageParams, total: int | None = None) -> dict[str, Any]:
    return {
        "items": [i.model_dump(mode="json") if isinstance(i, BaseModel) else i for i in items],
        "limit": params.limit,
        "offset": params.offset,
        "total": total,
    }
