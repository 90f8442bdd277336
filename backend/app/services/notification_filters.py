"""검색 AST와 구조적 필터(유형/상태/기간/정렬)를 저장소 독립적인 Query 로 합칩니다."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import List, Optional, Sequence, Tuple

from app.services.search_query import (
    And,
    DateRange,
    FieldEquals,
    FilterExpression,
    Or,
    OrderKey,
    Predicate,
    TypeIn,
)

SORT_ORDERS = {
    "newest": (OrderKey("created_at", descending=True),),
    "oldest": (OrderKey("created_at", descending=False),),
    "type": (OrderKey("type", descending=False), OrderKey("created_at", descending=True)),
}


@dataclass
class StructuralFilters:
    user_id: Optional[int] = None
    types: List[str] = field(default_factory=list)
    status: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort: str = "newest"


@dataclass(frozen=True)
class Query:
    predicate: And
    order_by: Tuple[OrderKey, ...]
    limit: Optional[int] = None
    offset: Optional[int] = None
    cursor: Optional[int] = None
    owner_id: Optional[int] = None

    def with_predicate(self, extra: Predicate) -> "Query":
        return replace(self, predicate=And((*self.predicate.children, extra)))


def _lower_bound(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return value


def _upper_bound(value):
    # 날짜만 주어지면 해당 일의 마지막 시각까지 포함한다.
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max)
    return value


def build_order(sort: Optional[str]) -> Tuple[OrderKey, ...]:
    keys = SORT_ORDERS.get((sort or "newest").strip().lower(), SORT_ORDERS["newest"])
    # id 를 마지막 정렬 키로 붙여 전순서를 보장한다.
    return (*keys, OrderKey("id", descending=keys[-1].descending))


def _merge_types(and_terms: Sequence[Predicate], types: Sequence[str]) -> List[Predicate]:
    if not types:
        return list(and_terms)
    merged = []
    found = False
    for term in and_terms:
        if isinstance(term, TypeIn) and not found:
            values = list(term.values)
            values.extend(value for value in types if value not in values)
            merged.append(TypeIn(tuple(values)))
            found = True
        else:
            merged.append(term)
    if not found:
        merged.append(TypeIn(tuple(dict.fromkeys(types))))
    return merged


def compile_query(expr: FilterExpression, structural: Optional[StructuralFilters] = None) -> Query:
    structural = structural or StructuralFilters()
    children: List[Predicate] = []

    if structural.user_id is not None:
        children.append(FieldEquals("user_id", structural.user_id))

    children.extend(_merge_types(expr.and_terms, structural.types))

    status = (structural.status or "all").strip().lower()
    if status == "unread":
        children.append(FieldEquals("read", False))
    elif status == "read":
        children.append(FieldEquals("read", True))

    if structural.date_from is not None or structural.date_to is not None:
        children.append(
            DateRange(
                "created_at",
                start=_lower_bound(structural.date_from),
                end=_upper_bound(structural.date_to),
            )
        )

    if expr.or_terms:
        children.append(Or(tuple(expr.or_terms)))

    return Query(
        predicate=And(tuple(children)),
        order_by=build_order(structural.sort),
        owner_id=structural.user_id,
    )
