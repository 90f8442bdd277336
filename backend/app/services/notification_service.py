"""Notification Service 도메인 서비스 레이어입니다. 비즈니스 규칙과 데이터 접근 흐름을 캡슐화합니다."""

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.models.notification import Notification
from app.schemas.notification import NotificationFilterParams
from app.services import bulk_service
from app.services.delivery import DeliveryChannel, notify_user
from app.services.notification_filters import Query, StructuralFilters, compile_query
from app.services.notification_store import NotificationStore
from app.services.pagination import CursorPage, OffsetPage, paginate_cursor, paginate_offset
from app.services.preference_service import PreferenceResolver
from app.services.search_query import And, DateRange, FieldEquals, IdIn, parse

logger = logging.getLogger(__name__)

CSV_HEADER = ["ID", "Message", "Type", "Status", "Created At", "Updated At", "Link"]
URGENT_TYPE = "urgent"


def _owned_by(user_id: int, *extra) -> And:
    return And((FieldEquals("user_id", user_id), *extra))


def build_query(user_id: int, filters: Optional[NotificationFilterParams] = None) -> Query:
    filters = filters or NotificationFilterParams()
    expression = parse(filters.search, filters.types)
    return compile_query(
        expression,
        StructuralFilters(
            user_id=user_id,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
            sort=filters.sort,
        ),
    )


# ---------------------------------------------------------------------------
# 조회
# ---------------------------------------------------------------------------


def get_notifications_with_filters(
    db: Session,
    user_id: int,
    filters: Optional[NotificationFilterParams] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> OffsetPage:
    query = build_query(user_id, filters)
    return paginate_offset(NotificationStore(db), query, limit=limit, offset=offset)


def get_notifications_with_cursor(
    db: Session,
    user_id: int,
    filters: Optional[NotificationFilterParams] = None,
    *,
    cursor: Optional[int] = None,
    limit: Optional[int] = None,
) -> CursorPage:
    query = build_query(user_id, filters)
    return paginate_cursor(NotificationStore(db), query, cursor=cursor, limit=settings.clamp_page_size(limit))


def get_notifications_batch(db: Session, user_id: int, notification_ids: List[int]) -> List[Notification]:
    if not notification_ids:
        return []
    query = build_query(user_id).with_predicate(IdIn(tuple(dict.fromkeys(notification_ids))))
    return NotificationStore(db).query(query.predicate, query.order_by)


def get_recent_notifications(db: Session, user_id: int, limit: Optional[int] = None) -> List[Notification]:
    query = build_query(user_id)
    return NotificationStore(db).query(
        query.predicate,
        query.order_by,
        limit=settings.clamp_page_size(limit or settings.NOTIFICATION_RECENT_LIMIT),
    )


def get_unread_count(db: Session, user_id: int) -> int:
    return NotificationStore(db).count(_owned_by(user_id, FieldEquals("read", False)))


def get_notification_counts(db: Session, user_id: int) -> dict:
    store = NotificationStore(db)
    return {
        "total": store.count(_owned_by(user_id)),
        "unread": store.count(_owned_by(user_id, FieldEquals("read", False))),
        "urgent": store.count(_owned_by(user_id, FieldEquals("type", URGENT_TYPE), FieldEquals("read", False))),
    }


def _type_counts(rows) -> list:
    return [{"type": noti_type or "unknown", "count": count} for noti_type, count in rows]


def get_notification_stats(db: Session, user_id: int) -> dict:
    store = NotificationStore(db)
    total = store.count(_owned_by(user_id))
    unread = store.count(_owned_by(user_id, FieldEquals("read", False)))
    return {
        "total": total,
        "unread": unread,
        "read": total - unread,
        "by_type": _type_counts(store.count_by_type(_owned_by(user_id))),
    }


def get_notification_analytics(
    db: Session,
    user_id: int,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    store = NotificationStore(db)
    now = now or datetime.utcnow()
    period = DateRange("created_at", start=now - timedelta(days=days or settings.NOTIFICATION_ANALYTICS_DAYS))
    last_week = DateRange("created_at", start=now - timedelta(days=7))

    total = store.count(_owned_by(user_id, period))
    unread = store.count(_owned_by(user_id, period, FieldEquals("read", False)))
    read = store.count(_owned_by(user_id, period, FieldEquals("read", True)))
    read_rate = round(read / total * 100, 2) if total > 0 else 0.0
    return {
        "total_count": total,
        "unread_count": unread,
        "read_count": read,
        "read_rate": read_rate,
        "type_distribution": _type_counts(store.count_by_type(_owned_by(user_id, period))),
        "daily_activity": [
            {"date": day, "count": count}
            for day, count in store.daily_counts(_owned_by(user_id, last_week))
        ],
    }


# ---------------------------------------------------------------------------
# 생성 / 단건 변경
# ---------------------------------------------------------------------------


def create_notification(
    db: Session,
    user_id: int,
    message: str,
    noti_type: Optional[str] = None,
    link: Optional[str] = None,
    *,
    channel: Optional[DeliveryChannel] = None,
    resolver: Optional[PreferenceResolver] = None,
) -> Optional[Notification]:
    store = NotificationStore(db)
    resolver = resolver or PreferenceResolver(store)
    if noti_type and not resolver.should_send_notification(user_id, noti_type, "inApp"):
        logger.info("[notifications] in-app %s suppressed for user %s by preference", noti_type, user_id)
        return None

    noti = store.add(Notification(user_id=user_id, message=message or "", type=noti_type, link=link))
    notify_user(
        channel,
        user_id,
        {
            "type": "notification",
            "data": {
                "id": noti.id,
                "type": noti.type,
                "message": noti.message,
                "link": noti.link,
                "created_at": noti.created_at.isoformat(),
            },
        },
    )
    return noti


def _get_owned_or_404(store: NotificationStore, noti_id: int, user_id: int) -> Notification:
    noti = store.get(noti_id, user_id=user_id)
    if not noti:
        raise HTTPException(status_code=404, detail="알림을 찾을 수 없습니다.")
    return noti


def _set_read(db: Session, noti_id: int, user_id: int, read: bool, event_type: str, channel) -> Notification:
    store = NotificationStore(db)
    noti = _get_owned_or_404(store, noti_id, user_id)
    noti.read = read
    store.save(noti)
    notify_user(channel, noti.user_id, {"type": event_type, "notification_id": noti.id})
    return noti


def mark_read(db: Session, noti_id: int, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> Notification:
    return _set_read(db, noti_id, user_id, True, "notification_read", channel)


def mark_unread(db: Session, noti_id: int, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> Notification:
    return _set_read(db, noti_id, user_id, False, "notification_unread", channel)


def delete_notification(db: Session, noti_id: int, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> None:
    store = NotificationStore(db)
    noti = _get_owned_or_404(store, noti_id, user_id)
    store.remove(noti)
    notify_user(channel, user_id, {"type": "notification_delete", "notification_id": noti_id})


# ---------------------------------------------------------------------------
# 사용자 단위 일괄 변경
# ---------------------------------------------------------------------------


def mark_all_read(db: Session, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> int:
    count = NotificationStore(db).update_where(_owned_by(user_id, FieldEquals("read", False)), {"read": True})
    notify_user(channel, user_id, {"type": "notification_bulk_read", "count": count})
    return count


def delete_all_notifications(db: Session, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> int:
    count = NotificationStore(db).delete_where(_owned_by(user_id))
    notify_user(channel, user_id, {"type": "notification_bulk_delete", "count": count})
    return count


def delete_read_notifications(db: Session, user_id: int, *, channel: Optional[DeliveryChannel] = None) -> int:
    count = NotificationStore(db).delete_where(_owned_by(user_id, FieldEquals("read", True)))
    notify_user(channel, user_id, {"type": "notification_bulk_delete_read", "count": count})
    return count


def delete_notifications_by_type(
    db: Session,
    user_id: int,
    noti_type: str,
    *,
    channel: Optional[DeliveryChannel] = None,
) -> int:
    count = NotificationStore(db).delete_where(_owned_by(user_id, FieldEquals("type", noti_type)))
    notify_user(
        channel,
        user_id,
        {"type": "notification_bulk_delete_by_type", "notification_type": noti_type, "count": count},
    )
    return count


# ---------------------------------------------------------------------------
# 선택 id 일괄 변경
# ---------------------------------------------------------------------------


def bulk_mark_read(db: Session, user_id: int, notification_ids: List[int], *, channel=None) -> int:
    return bulk_service.bulk_mark_as_read(NotificationStore(db), notification_ids, user_id=user_id, channel=channel)


def bulk_mark_unread(db: Session, user_id: int, notification_ids: List[int], *, channel=None) -> int:
    return bulk_service.bulk_mark_as_unread(NotificationStore(db), notification_ids, user_id=user_id, channel=channel)


def bulk_delete(db: Session, user_id: int, notification_ids: List[int], *, channel=None) -> int:
    return bulk_service.bulk_delete(NotificationStore(db), notification_ids, user_id=user_id, channel=channel)


def bulk_mark_read_optimized(
    db: Session,
    user_id: int,
    notification_ids: List[int],
    batch_size: Optional[int] = None,
    *,
    channel=None,
) -> bulk_service.BulkResult:
    return bulk_service.bulk_mark_as_read_optimized(
        NotificationStore(db),
        notification_ids,
        batch_size or settings.NOTIFICATION_BULK_BATCH_SIZE,
        user_id=user_id,
        channel=channel,
    )


# ---------------------------------------------------------------------------
# CSV 내보내기
# ---------------------------------------------------------------------------


def _csv_field(value, quoting=csv.QUOTE_MINIMAL) -> str:
    text = "" if value is None else str(value)
    if not text:
        return ""
    buf = io.StringIO()
    csv.writer(buf, quoting=quoting, lineterminator="\n").writerow([text])
    return buf.getvalue().removesuffix("\n")


def render_csv(notifications) -> str:
    """Message 열은 비어 있지 않으면 항상 따옴표로 감싸고, 나머지 열은 필요할 때만 감싼다."""
    lines = [",".join(CSV_HEADER)]
    for noti in notifications:
        lines.append(",".join([
            _csv_field(noti.id),
            _csv_field(noti.message, csv.QUOTE_ALL),
            _csv_field(noti.type),
            "Read" if noti.read else "Unread",
            noti.created_at.isoformat(),
            noti.updated_at.isoformat(),
            _csv_field(noti.link),
        ]))
    return "\n".join(lines) + "\n"


def export_filename(user_id: int, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.utcnow()).strftime("%Y-%m-%d")
    return f"notifications-{user_id}-{stamp}.csv"


def export_notifications(
    db: Session,
    user_id: int,
    filters: Optional[NotificationFilterParams] = None,
    now: Optional[datetime] = None,
) -> dict:
    page = get_notifications_with_filters(db, user_id, filters)
    logger.info("[notifications] exporting %d notifications for user %s", len(page.rows), user_id)
    return {
        "csv": render_csv(page.rows),
        "filename": export_filename(user_id, now),
        "count": len(page.rows),
    }
