"""Notification 도메인의 SQLAlchemy 모델 정의입니다."""

import json
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base


class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    message = Column(Text, nullable=False, default="")
    type = Column(String(50))  # welcome/security/billing/urgent/reminders/...
    read = Column(Boolean, nullable=False, default=False)
    link = Column(String(500))
    # 커서 비교가 같은 포맷으로 저장되도록 DB 기본값 대신 애플리케이션 시각을 사용한다.
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notification_user", "user_id", "read", "created_at"),
    )


def _load_types(raw):
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if isinstance(parsed, list):
        return [str(item) for item in parsed if str(item).strip()]
    return []


class NotificationPreference(Base):
    __tablename__ = "notification_preference"

    pref_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, unique=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    email_types_raw = Column("email_types", Text)  # JSON array
    push_enabled = Column(Boolean, nullable=False, default=True)
    push_types_raw = Column("push_types", Text)  # JSON array
    in_app_enabled = Column(Boolean, nullable=False, default=True)
    in_app_types_raw = Column("in_app_types", Text)  # JSON array
    email_frequency = Column(String(20), nullable=False, default="immediate")  # immediate/hourly/daily/weekly
    digest_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(String(5))  # HH:MM
    quiet_hours_end = Column(String(5))  # HH:MM
    marketing_enabled = Column(Boolean, nullable=False, default=False)
    promotional_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notification_preference")

    @property
    def email_types(self):
        return _load_types(self.email_types_raw)

    @email_types.setter
    def email_types(self, values):
        self.email_types_raw = json.dumps(list(values or []))

    @property
    def push_types(self):
        return _load_types(self.push_types_raw)

    @push_types.setter
    def push_types(self, values):
        self.push_types_raw = json.dumps(list(values or []))

    @property
    def in_app_types(self):
        return _load_types(self.in_app_types_raw)

    @in_app_types.setter
    def in_app_types(self, values):
        self.in_app_types_raw = json.dumps(list(values or []))
