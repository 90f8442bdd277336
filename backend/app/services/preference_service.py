"""채널별 알림 수신 설정을 해석하고 발송 가능 여부(방해 금지 시간 포함)를 판단합니다."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

WILDCARD = "all"
SUPPORTED_FREQUENCIES = {"immediate", "hourly", "daily", "weekly"}
TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# 채널 이름 -> (활성화 필드, 허용 유형 필드)
CHANNEL_FIELDS = {
    "email": ("email_enabled", "email_types"),
    "push": ("push_enabled", "push_types"),
    "inApp": ("in_app_enabled", "in_app_types"),
    "in_app": ("in_app_enabled", "in_app_types"),
}

PREFERENCE_FIELDS = (
    "email_enabled",
    "email_types",
    "push_enabled",
    "push_types",
    "in_app_enabled",
    "in_app_types",
    "email_frequency",
    "digest_enabled",
    "quiet_hours_enabled",
    "quiet_hours_start",
    "quiet_hours_end",
    "marketing_enabled",
    "promotional_enabled",
)


def get_default_preferences() -> dict:
    return {
        "email_enabled": True,
        "email_types": ["welcome", "security", "billing"],
        "push_enabled": True,
        "push_types": ["urgent", "reminders"],
        "in_app_enabled": True,
        "in_app_types": [WILDCARD],
        "email_frequency": "immediate",
        "digest_enabled": False,
        "quiet_hours_enabled": False,
        "quiet_hours_start": None,
        "quiet_hours_end": None,
        "marketing_enabled": False,
        "promotional_enabled": False,
    }


@dataclass(frozen=True, order=True)
class TimeOfDay:
    minutes: int

    @classmethod
    def parse(cls, raw: str) -> "TimeOfDay":
        match = TIME_OF_DAY_RE.match(str(raw or "").strip())
        if not match:
            raise ValueError(f"Invalid time of day: {raw!r} (expected HH:MM)")
        return cls(int(match.group(1)) * 60 + int(match.group(2)))

    @classmethod
    def from_datetime(cls, value: datetime) -> "TimeOfDay":
        return cls(value.hour * 60 + value.minute)

    def __str__(self) -> str:
        return f"{self.minutes // 60:02d}:{self.minutes % 60:02d}"


def is_within_quiet_window(start: TimeOfDay, end: TimeOfDay, now: TimeOfDay) -> bool:
    """start <= end 면 같은 날 구간, start > end 면 자정을 넘는 구간(예: 22:00-08:00)."""
    if start <= end:
        return start <= now <= end
    return now >= start or now <= end


def _snapshot(pref) -> dict:
    return {name: getattr(pref, name) for name in PREFERENCE_FIELDS}


class PreferenceResolver:
    def __init__(self, store: NotificationStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def get_user_preferences(self, user_id: int):
        return self.store.get_preference(user_id)

    def get_effective_preferences(self, user_id: int) -> dict:
        pref = self.get_user_preferences(user_id)
        if pref is None:
            return get_default_preferences()
        return _snapshot(pref)

    def create_or_update_preferences(self, user_id: int, patch: dict):
        values = {key: value for key, value in patch.items() if key in PREFERENCE_FIELDS}
        for key in ("quiet_hours_start", "quiet_hours_end"):
            if values.get(key):
                values[key] = str(TimeOfDay.parse(values[key]))
        if "email_frequency" in values and values["email_frequency"] not in SUPPORTED_FREQUENCIES:
            values["email_frequency"] = "immediate"
        if self.get_user_preferences(user_id) is None:
            # 새 레코드는 기본값 위에 요청 값을 덮어쓴다.
            values = {**get_default_preferences(), **values}
        pref = self.store.upsert_preference(user_id, values)
        logger.info("[preferences] saved preferences for user %s (%s)", user_id, ", ".join(sorted(values)))
        return pref

    def delete_preferences(self, user_id: int) -> bool:
        return self.store.delete_preference(user_id)

    def is_in_quiet_hours(self, user_id: int, now: Optional[datetime] = None) -> bool:
        return self._quiet_hours_active(self.get_effective_preferences(user_id), now)

    def _quiet_hours_active(self, prefs: dict, now: Optional[datetime] = None) -> bool:
        if not prefs.get("quiet_hours_enabled"):
            return False
        start_raw, end_raw = prefs.get("quiet_hours_start"), prefs.get("quiet_hours_end")
        if not start_raw or not end_raw:
            return False
        try:
            start, end = TimeOfDay.parse(start_raw), TimeOfDay.parse(end_raw)
        except ValueError:
            logger.warning("[preferences] ignoring malformed quiet hours %r-%r", start_raw, end_raw)
            return False
        current = TimeOfDay.from_datetime(now or self.clock())
        return is_within_quiet_window(start, end, current)

    def should_send_notification(self, user_id: int, notification_type: str, channel: str) -> bool:
        fields = CHANNEL_FIELDS.get(channel)
        if fields is None:
            return False
        enabled_field, types_field = fields
        prefs = self.get_effective_preferences(user_id)
        if not prefs.get(enabled_field):
            return False
        allowed = prefs.get(types_field) or []
        if WILDCARD not in allowed and notification_type not in allowed:
            return False
        if self._quiet_hours_active(prefs):
            return False
        return True
