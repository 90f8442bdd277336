"""오프셋/커서 두 가지 방식으로 Query 를 실행하는 페이지네이션 엔진입니다."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, List, Optional, TypeVar

from app.services.notification_store import NotificationStore
from app.services.notification_filters import Query
from app.services.search_query import KeysetAfter

T = TypeVar("T")


@dataclass
class OffsetPage(Generic[T]):
    rows: List[T]
    total_count: int
    has_more: bool


@dataclass
class CursorPage(Generic[T]):
    rows: List[T]
    has_more: bool
    next_cursor: Optional[int]


def paginate_offset(store: NotificationStore, query: Query, limit: Optional[int] = None, offset: int = 0) -> OffsetPage:
    offset = max(0, int(offset or 0))
    total_count = store.count(query.predicate)
    rows = store.query(query.predicate, query.order_by, limit=limit, offset=offset)
    has_more = limit is not None and offset + limit < total_count
    return OffsetPage(rows=rows, total_count=total_count, has_more=has_more)


def paginate_cursor(store: NotificationStore, query: Query, cursor: Optional[int] = None, limit: int = 20) -> CursorPage:
    if limit < 1:
        raise ValueError("limit must be at least 1")
    if cursor is not None:
        query = query.with_predicate(KeysetAfter(int(cursor), query.order_by, user_id=query.owner_id))
    query = replace(query, cursor=cursor, limit=limit)

    # 한 건을 더 읽어 다음 페이지 존재 여부를 판단한다.
    rows = store.query(query.predicate, query.order_by, limit=limit + 1)
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]
    next_cursor = rows[-1].id if has_more else None
    return CursorPage(rows=rows, has_more=has_more, next_cursor=next_cursor)
