"""Notifications 기능 API 라우터입니다. 요청을 검증하고 서비스 레이어로 비즈니스 로직을 위임합니다."""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.middleware.auth_middleware import decode_token, get_current_user
from app.models.user import User
from app.schemas.notification import (
    BulkBatchResultOut,
    BulkCountOut,
    DeliveryCheckOut,
    NotificationAnalyticsOut,
    NotificationBulkReadIn,
    NotificationCountsOut,
    NotificationCreate,
    NotificationCursorPageOut,
    NotificationFilterParams,
    NotificationIdsIn,
    NotificationOut,
    NotificationPageOut,
    NotificationPreferenceOut,
    NotificationPreferenceUpdate,
    NotificationStatsOut,
)
from app.services import notification_service
from app.services.delivery import DeliveryChannel
from app.services.notification_store import NotificationStore
from app.services.preference_service import PreferenceResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def get_delivery_channel(request: Request) -> Optional[DeliveryChannel]:
    return getattr(request.app.state, "delivery_channel", None)


def filter_params(
    search: Optional[str] = None,
    types: List[str] = Query([]),
    status: Literal["all", "read", "unread"] = "all",
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    sort: Literal["newest", "oldest", "type"] = "newest",
) -> NotificationFilterParams:
    # 기간 값은 스키마에서 해석한다. 날짜만 주면 하루 전체, 시각까지 주면 그 시각이 경계다.
    try:
        return NotificationFilterParams(
            search=search,
            types=types,
            status=status,
            date_from=date_from,
            date_to=date_to,
            sort=sort,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in exc.errors()])


def _page_out(page) -> dict:
    return {
        "notifications": page.rows,
        "total_count": page.total_count,
        "has_more": page.has_more,
    }


@router.get("", response_model=NotificationPageOut)
def list_notifications(
    filters: NotificationFilterParams = Depends(filter_params),
    limit: Optional[int] = None,
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    page = notification_service.get_notifications_with_filters(
        db,
        current_user.user_id,
        filters,
        limit=settings.clamp_page_size(limit),
        offset=offset,
    )
    return _page_out(page)


@router.get("/cursor", response_model=NotificationCursorPageOut)
def list_notifications_by_cursor(
    filters: NotificationFilterParams = Depends(filter_params),
    cursor: Optional[int] = None,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    page = notification_service.get_notifications_with_cursor(
        db, current_user.user_id, filters, cursor=cursor, limit=limit
    )
    return {"notifications": page.rows, "has_more": page.has_more, "next_cursor": page.next_cursor}


@router.get("/recent", response_model=List[NotificationOut])
def recent_notifications(
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.get_recent_notifications(db, current_user.user_id, limit)


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"count": notification_service.get_unread_count(db, current_user.user_id)}


@router.get("/stats", response_model=NotificationStatsOut)
def notification_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return notification_service.get_notification_stats(db, current_user.user_id)


@router.get("/counts", response_model=NotificationCountsOut)
def notification_counts(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return notification_service.get_notification_counts(db, current_user.user_id)


@router.get("/analytics", response_model=NotificationAnalyticsOut)
def notification_analytics(
    days: int = Query(settings.NOTIFICATION_ANALYTICS_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.get_notification_analytics(db, current_user.user_id, days)


@router.get("/export.csv")
def export_notifications(
    filters: NotificationFilterParams = Depends(filter_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = notification_service.export_notifications(db, current_user.user_id, filters)
    return Response(
        content=result["csv"],
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{result["filename"]}"'},
    )


@router.post("", response_model=Optional[NotificationOut], status_code=201)
def create_notification(
    data: NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    # 인앱 수신 설정으로 걸러지면 null 을 돌려준다.
    return notification_service.create_notification(
        db, current_user.user_id, data.message, data.type, data.link, channel=channel
    )


@router.post("/batch", response_model=List[NotificationOut])
def get_notifications_batch(
    data: NotificationIdsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.get_notifications_batch(db, current_user.user_id, data.notification_ids)


# ---------------------------------------------------------------------------
# 수신 설정
# ---------------------------------------------------------------------------


def _resolver(db: Session) -> PreferenceResolver:
    return PreferenceResolver(NotificationStore(db))


@router.get("/preferences", response_model=NotificationPreferenceOut)
def get_preferences(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _resolver(db).get_effective_preferences(current_user.user_id)


@router.put("/preferences", response_model=NotificationPreferenceOut)
def update_preferences(
    data: NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    resolver = _resolver(db)
    resolver.create_or_update_preferences(current_user.user_id, data.model_dump(exclude_unset=True))
    return resolver.get_effective_preferences(current_user.user_id)


@router.delete("/preferences")
def delete_preferences(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    deleted = _resolver(db).delete_preferences(current_user.user_id)
    return {"deleted": deleted, "message": "알림 설정을 기본값으로 되돌렸습니다."}


@router.get("/preferences/check", response_model=DeliveryCheckOut)
def check_delivery(
    type: str = Query(..., min_length=1, max_length=50),
    channel: Literal["email", "push", "inApp", "in_app"] = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    resolver = _resolver(db)
    return {
        "type": type,
        "channel": channel,
        "allowed": resolver.should_send_notification(current_user.user_id, type, channel),
        "in_quiet_hours": resolver.is_in_quiet_hours(current_user.user_id),
    }


# ---------------------------------------------------------------------------
# 일괄 처리
# ---------------------------------------------------------------------------


@router.post("/read-all", response_model=BulkCountOut)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    return {"count": notification_service.mark_all_read(db, current_user.user_id, channel=channel)}


@router.post("/bulk/read", response_model=BulkCountOut)
def bulk_mark_read(
    data: NotificationIdsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    count = notification_service.bulk_mark_read(db, current_user.user_id, data.notification_ids, channel=channel)
    return {"count": count}


@router.post("/bulk/unread", response_model=BulkCountOut)
def bulk_mark_unread(
    data: NotificationIdsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    count = notification_service.bulk_mark_unread(db, current_user.user_id, data.notification_ids, channel=channel)
    return {"count": count}


@router.post("/bulk/read-optimized", response_model=BulkBatchResultOut)
def bulk_mark_read_optimized(
    data: NotificationBulkReadIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    result = notification_service.bulk_mark_read_optimized(
        db, current_user.user_id, data.notification_ids, data.batch_size, channel=channel
    )
    return {"count": result.count, "batches": result.batches}


@router.post("/bulk/delete", response_model=BulkCountOut)
def bulk_delete(
    data: NotificationIdsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    count = notification_service.bulk_delete(db, current_user.user_id, data.notification_ids, channel=channel)
    return {"count": count}


@router.delete("/all", response_model=BulkCountOut)
def delete_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    return {"count": notification_service.delete_all_notifications(db, current_user.user_id, channel=channel)}


@router.delete("/read", response_model=BulkCountOut)
def delete_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    return {"count": notification_service.delete_read_notifications(db, current_user.user_id, channel=channel)}


@router.delete("/type/{noti_type}", response_model=BulkCountOut)
def delete_by_type(
    noti_type: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    count = notification_service.delete_notifications_by_type(db, current_user.user_id, noti_type, channel=channel)
    return {"count": count}


# ---------------------------------------------------------------------------
# 단건 처리
# ---------------------------------------------------------------------------


@router.patch("/{noti_id}/read", response_model=NotificationOut)
def mark_read(
    noti_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    return notification_service.mark_read(db, noti_id, current_user.user_id, channel=channel)


@router.patch("/{noti_id}/unread", response_model=NotificationOut)
def mark_unread(
    noti_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    return notification_service.mark_unread(db, noti_id, current_user.user_id, channel=channel)


@router.delete("/{noti_id}")
def delete_notification(
    noti_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    channel: Optional[DeliveryChannel] = Depends(get_delivery_channel),
):
    notification_service.delete_notification(db, noti_id, current_user.user_id, channel=channel)
    return {"message": "알림이 삭제되었습니다."}


# ---------------------------------------------------------------------------
# 실시간 전달
# ---------------------------------------------------------------------------


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str = Query(...)):
    """클라이언트는 ?token=<access token> 으로 접속한다. 서버는 알림 이벤트를 JSON 텍스트로 보낸다."""
    try:
        user_id = int(decode_token(token).get("sub"))
    except (HTTPException, TypeError, ValueError):
        await websocket.close(code=4401)
        return

    manager = websocket.app.state.ws_manager
    await manager.connect(user_id, websocket)
    logger.debug("[delivery] socket opened for user %s", user_id)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(user_id, websocket)
        logger.debug("[delivery] socket closed for user %s", user_id)
