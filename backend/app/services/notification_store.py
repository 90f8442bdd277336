"""NotificationRecordStore 의 SQLAlchemy 구현입니다.

검색 AST(`app.services.search_query`)를 SQLAlchemy 조건식으로 내리는 작업은
`to_sqlalchemy` 한 곳에서만 수행합니다. 변경 계열 메서드는 호출 단위로 commit 하므로
한 번의 호출이 하나의 원자적 단위가 됩니다.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import String, and_, false, func, not_, or_, true
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationPreference
from app.services.search_query import (
    And,
    DateRange,
    Exclude,
    FieldEquals,
    IdIn,
    Include,
    KeysetAfter,
    Or,
    OrderKey,
    Predicate,
    TypeIn,
)

FIELD_COLUMNS = {
    "id": Notification.id,
    "user_id": Notification.user_id,
    "message": Notification.message,
    "type": Notification.type,
    "read": Notification.read,
    "created_at": Notification.created_at,
    "updated_at": Notification.updated_at,
}


def _text_column(column):
    return func.coalesce(column, "", type_=String)


def _contains_term(term: str):
    return or_(
        _text_column(Notification.message).icontains(term, autoescape=True),
        _text_column(Notification.type).icontains(term, autoescape=True),
    )


def _order_column(field: str):
    if field == "type":
        # NULL 유형은 빈 문자열로 정렬/비교해 커서 경계가 흔들리지 않게 한다.
        return _text_column(Notification.type)
    return FIELD_COLUMNS[field]


def _anchor_value(anchor: Notification, field: str):
    if field == "type":
        return anchor.type or ""
    return getattr(anchor, field)


def _keyset_after(db: Session, node: KeysetAfter):
    q = db.query(Notification).filter(Notification.id == node.cursor)
    if node.user_id is not None:
        q = q.filter(Notification.user_id == node.user_id)
    anchor = q.first()
    if anchor is None:
        # 커서 행이 사라졌거나 다른 사용자의 행이면 id 경계만으로 이어간다.
        if node.order_by[0].descending:
            return Notification.id < node.cursor
        return Notification.id > node.cursor

    clauses = []
    equal_so_far = []
    for key in node.order_by:
        column = _order_column(key.field)
        value = _anchor_value(anchor, key.field)
        beyond = column < value if key.descending else column > value
        clauses.append(and_(*equal_so_far, beyond))
        equal_so_far.append(column == value)
    return or_(*clauses)


def to_sqlalchemy(predicate: Predicate, db: Session):
    if isinstance(predicate, Include):
        return _contains_term(predicate.term)
    if isinstance(predicate, Exclude):
        return not_(_contains_term(predicate.term))
    if isinstance(predicate, TypeIn):
        if not predicate.values:
            return false()
        return Notification.type.in_(list(predicate.values))
    if isinstance(predicate, IdIn):
        if not predicate.values:
            return false()
        return Notification.id.in_(list(predicate.values))
    if isinstance(predicate, FieldEquals):
        return FIELD_COLUMNS[predicate.field] == predicate.value
    if isinstance(predicate, DateRange):
        column = FIELD_COLUMNS[predicate.field]
        bounds = []
        if predicate.start is not None:
            bounds.append(column >= predicate.start)
        if predicate.end is not None:
            bounds.append(column <= predicate.end)
        return and_(*bounds) if bounds else true()
    if isinstance(predicate, KeysetAfter):
        return _keyset_after(db, predicate)
    if isinstance(predicate, And):
        if not predicate.children:
            return true()
        return and_(*(to_sqlalchemy(child, db) for child in predicate.children))
    if isinstance(predicate, Or):
        if not predicate.children:
            return false()
        return or_(*(to_sqlalchemy(child, db) for child in predicate.children))
    raise TypeError(f"Unsupported predicate node: {predicate!r}")


def order_clauses(order_by: Sequence[OrderKey]):
    return [
        _order_column(key.field).desc() if key.descending else _order_column(key.field).asc()
        for key in order_by
    ]


class NotificationStore:
    def __init__(self, db: Session):
        self.db = db

    # -- reads -------------------------------------------------------------

    def query(
        self,
        predicate: Predicate,
        order_by: Sequence[OrderKey] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Notification]:
        q = self.db.query(Notification).filter(to_sqlalchemy(predicate, self.db))
        if order_by:
            q = q.order_by(*order_clauses(order_by))
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def count(self, predicate: Predicate) -> int:
        return self.db.query(func.count(Notification.id)).filter(to_sqlalchemy(predicate, self.db)).scalar() or 0

    def get(self, notification_id: int, user_id: Optional[int] = None) -> Optional[Notification]:
        q = self.db.query(Notification).filter(Notification.id == notification_id)
        if user_id is not None:
            q = q.filter(Notification.user_id == user_id)
        return q.first()

    def user_ids_for(self, ids: Iterable[int], user_id: Optional[int] = None) -> List[int]:
        id_list = list(ids)
        if not id_list:
            return []
        q = self.db.query(Notification.user_id).filter(Notification.id.in_(id_list))
        if user_id is not None:
            q = q.filter(Notification.user_id == user_id)
        rows = q.distinct().order_by(Notification.user_id.asc()).all()
        return [int(row[0]) for row in rows]

    def count_by_type(self, predicate: Predicate) -> List[Tuple[Optional[str], int]]:
        rows = (
            self.db.query(Notification.type, func.count(Notification.id))
            .filter(to_sqlalchemy(predicate, self.db))
            .group_by(Notification.type)
            .order_by(Notification.type.asc())
            .all()
        )
        return [(row[0], int(row[1])) for row in rows]

    def daily_counts(self, predicate: Predicate) -> List[Tuple[str, int]]:
        day = func.date(Notification.created_at)
        rows = (
            self.db.query(day, func.count(Notification.id))
            .filter(to_sqlalchemy(predicate, self.db))
            .group_by(day)
            .order_by(day.asc())
            .all()
        )
        return [(str(row[0]), int(row[1])) for row in rows]

    # -- writes ------------------------------------------------------------

    def add(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def _id_filter(self, ids: Iterable[int], user_id: Optional[int]):
        q = self.db.query(Notification).filter(Notification.id.in_(list(ids)))
        if user_id is not None:
            q = q.filter(Notification.user_id == user_id)
        return q

    def update_many(self, ids: Iterable[int], patch: dict, user_id: Optional[int] = None) -> int:
        affected = self._id_filter(ids, user_id).update(dict(patch), synchronize_session=False)
        self.db.commit()
        return int(affected or 0)

    def update_where(self, predicate: Predicate, patch: dict) -> int:
        affected = (
            self.db.query(Notification)
            .filter(to_sqlalchemy(predicate, self.db))
            .update(dict(patch), synchronize_session=False)
        )
        self.db.commit()
        return int(affected or 0)

    def delete_many(self, ids: Iterable[int], user_id: Optional[int] = None) -> int:
        affected = self._id_filter(ids, user_id).delete(synchronize_session=False)
        self.db.commit()
        return int(affected or 0)

    def delete_where(self, predicate: Predicate) -> int:
        affected = (
            self.db.query(Notification)
            .filter(to_sqlalchemy(predicate, self.db))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return int(affected or 0)

    def save(self, notification: Notification) -> Notification:
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def remove(self, notification: Notification) -> None:
        self.db.delete(notification)
        self.db.commit()

    # -- preferences -------------------------------------------------------

    def get_preference(self, user_id: int) -> Optional[NotificationPreference]:
        return (
            self.db.query(NotificationPreference)
            .filter(NotificationPreference.user_id == user_id)
            .first()
        )

    def upsert_preference(self, user_id: int, patch: dict) -> NotificationPreference:
        pref = self.get_preference(user_id)
        if pref is None:
            pref = NotificationPreference(user_id=user_id)
            self.db.add(pref)
        for key, value in patch.items():
            setattr(pref, key, value)
        self.db.commit()
        self.db.refresh(pref)
        return pref

    def delete_preference(self, user_id: int) -> bool:
        pref = self.get_preference(user_id)
        if pref is None:
            return False
        self.db.delete(pref)
        self.db.commit()
        return True
