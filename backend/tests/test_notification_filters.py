"""검색 AST + 구조적 필터를 Query 로 합치는 컴파일러를 검증하는 테스트입니다."""

from datetime import date, datetime

from app.schemas.notification import NotificationFilterParams
from app.services.notification_filters import StructuralFilters, build_order, compile_query
from app.services.search_query import (
    DateRange,
    Exclude,
    FieldEquals,
    FilterExpression,
    Include,
    Or,
    OrderKey,
    TypeIn,
    parse,
)


def test_empty_expression_only_scopes_user():
    query = compile_query(FilterExpression(), StructuralFilters(user_id=7))
    assert query.predicate.children == (FieldEquals("user_id", 7),)
    assert query.order_by == (OrderKey("created_at", True), OrderKey("id", True))


def test_status_unread_and_read():
    unread = compile_query(FilterExpression(), StructuralFilters(status="unread"))
    read = compile_query(FilterExpression(), StructuralFilters(status="read"))
    every = compile_query(FilterExpression(), StructuralFilters(status="all"))
    assert FieldEquals("read", False) in unread.predicate.children
    assert FieldEquals("read", True) in read.predicate.children
    assert every.predicate.children == ()


def test_date_only_bounds_cover_whole_days():
    query = compile_query(
        FilterExpression(),
        StructuralFilters(date_from=date(2026, 3, 1), date_to=date(2026, 3, 2)),
    )
    (date_range,) = query.predicate.children
    assert date_range == DateRange(
        "created_at",
        start=datetime(2026, 3, 1, 0, 0, 0),
        end=datetime(2026, 3, 2, 23, 59, 59, 999999),
    )


def test_datetime_bounds_are_kept():
    start = datetime(2026, 3, 1, 12, 30)
    query = compile_query(FilterExpression(), StructuralFilters(date_from=start))
    assert query.predicate.children == (DateRange("created_at", start=start, end=None),)


def test_structural_types_merge_into_parsed_types():
    query = compile_query(parse("type:urgent"), StructuralFilters(types=["urgent", "info"]))
    assert query.predicate.children == (TypeIn(("urgent", "info")),)


def test_structural_types_added_when_search_has_none():
    query = compile_query(parse("disk"), StructuralFilters(types=["warning"]))
    assert TypeIn(("warning",)) in query.predicate.children


def test_or_terms_become_single_group():
    query = compile_query(parse("urgent OR warning -spam"), StructuralFilters(user_id=1))
    assert query.predicate.children == (
        FieldEquals("user_id", 1),
        Exclude("spam"),
        Or((Include("urgent"), Include("warning"))),
    )


def test_sort_orders_end_with_id_tiebreak():
    assert build_order("oldest") == (OrderKey("created_at", False), OrderKey("id", False))
    assert build_order("type") == (
        OrderKey("type", False),
        OrderKey("created_at", True),
        OrderKey("id", True),
    )
    assert build_order("bogus") == build_order("newest")


def test_filter_params_keep_midnight_datetimes():
    params = NotificationFilterParams(date_from="2026-03-01", date_to="2026-03-02T00:00:00")
    assert type(params.date_from) is date
    assert params.date_to == datetime(2026, 3, 2, 0, 0)
    query = compile_query(FilterExpression(), StructuralFilters(date_to=params.date_to))
    assert query.predicate.children == (DateRange("created_at", start=None, end=datetime(2026, 3, 2, 0, 0)),)


def test_filter_params_blank_dates_are_ignored():
    params = NotificationFilterParams(date_from=" ", date_to="")
    assert params.date_from is None
    assert params.date_to is None
