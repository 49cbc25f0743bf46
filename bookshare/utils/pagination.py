from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Query
from sqlalchemy import func
from sqlmodel import Session, select

MAX_PAGE_SIZE = 50


@dataclass
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def paginate(
    session: Session,
    query,
    params: PageParams,
    serialize: Optional[Callable[[Any], Any]] = None,
) -> dict:
    """Run ``query`` for one page; the envelope matches every list endpoint."""
    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    rows = session.exec(query.offset(params.offset).limit(params.limit)).all()

    return {
        "total_items": total,
        "total_pages": -(-total // params.limit),
        "current_page": params.page,
        "limit": params.limit,
        "results": [serialize(row) for row in rows] if serialize else rows,
    }
