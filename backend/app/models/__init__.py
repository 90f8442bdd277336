"""SQLAlchemy 모델 패키지 초기화 모듈입니다."""

from app.models.user import User
from app.models.notification import Notification, NotificationPreference

__all__ = [
    "User",
    "Notification", "NotificationPreference",
]
