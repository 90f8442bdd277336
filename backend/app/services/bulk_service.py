"""대량 id 집합에 대한 알림 상태 변경을 배치 단위로 나눠 처리합니다.

배치는 순차 실행된다. 다음 배치는 이전 배치의 변경이 끝난 뒤에만 발행되며,
실패한 배치는 예외를 그대로 올려 이후 배치를 중단한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from app.services.delivery import DeliveryChannel, notify_user
from app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


@dataclass
class BulkResult:
    count: int
    batches: int


def chunked(ids: Sequence[int], batch_size: int) -> Iterator[List[int]]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    for start in range(0, len(ids), batch_size):
        yield list(ids[start:start + batch_size])


def bulk_update(
    store: NotificationStore,
    ids: Sequence[int],
    patch: dict,
    batch_size: int = DEFAULT_BATCH_SIZE,
    *,
    user_id: Optional[int] = None,
) -> BulkResult:
    ids = list(ids)
    if not ids:
        return BulkResult(count=0, batches=0)

    total = 0
    batches = 0
    for index, chunk in enumerate(chunked(ids, batch_size)):
        try:
            total += store.update_many(chunk, patch, user_id=user_id)
        except Exception:
            logger.error(
                "[bulk] batch %d (%d ids starting at %s) failed after %d updated",
                index,
                len(chunk),
                chunk[0],
                total,
            )
            raise
        batches += 1
    logger.info("[bulk] updated %d notifications in %d batches", total, batches)
    return BulkResult(count=total, batches=batches)


def _fan_out(channel: Optional[DeliveryChannel], user_ids: Sequence[int], event: dict) -> None:
    for owner_id in user_ids:
        notify_user(channel, owner_id, event)


def bulk_mark_as_read_optimized(
    store: NotificationStore,
    ids: Sequence[int],
    batch_size: int = DEFAULT_BATCH_SIZE,
    *,
    user_id: Optional[int] = None,
    channel: Optional[DeliveryChannel] = None,
) -> BulkResult:
    result = bulk_update(store, ids, {"read": True}, batch_size, user_id=user_id)
    if result.batches:
        owners = store.user_ids_for(ids, user_id=user_id)
        _fan_out(channel, owners, {"type": "notification_bulk_read_optimized", "count": result.count})
    return result


def _bulk_toggle(
    store: NotificationStore,
    ids: Sequence[int],
    read: bool,
    event_type: str,
    *,
    user_id: Optional[int],
    channel: Optional[DeliveryChannel],
) -> int:
    ids = list(ids)
    if not ids:
        return 0
    affected = store.update_many(ids, {"read": read}, user_id=user_id)
    owners = store.user_ids_for(ids, user_id=user_id)
    _fan_out(channel, owners, {"type": event_type, "notification_ids": ids})
    return affected


def bulk_mark_as_read(store, ids, *, user_id=None, channel=None) -> int:
    return _bulk_toggle(store, ids, True, "notification_bulk_read_selected", user_id=user_id, channel=channel)


def bulk_mark_as_unread(store, ids, *, user_id=None, channel=None) -> int:
    return _bulk_toggle(store, ids, False, "notification_bulk_unread_selected", user_id=user_id, channel=channel)


def bulk_delete(store, ids, *, user_id=None, channel=None) -> int:
    ids = list(ids)
    if not ids:
        return 0
    # 삭제 후에는 소유자를 알 수 없으므로 먼저 조회한다.
    owners = store.user_ids_for(ids, user_id=user_id)
    affected = store.delete_many(ids, user_id=user_id)
    _fan_out(channel, owners, {"type": "notification_bulk_delete_selected", "notification_ids": ids})
    return affected
