"""Notification 요청/응답 계약을 위한 Pydantic 스키마입니다."""

import re
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional, Union

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class NotificationOut(BaseModel):
    id: int
    user_id: int
    message: str
    type: Optional[str]
    read: bool
    link: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NotificationCreate(BaseModel):
    message: str = ""
    type: Optional[str] = Field(None, max_length=50)
    link: Optional[str] = Field(None, max_length=500)


class NotificationFilterParams(BaseModel):
    search: Optional[str] = None
    types: List[str] = []
    status: Literal["all", "read", "unread"] = "all"
    # 날짜만 온 값만 date 로 남기고, 시각이 붙은 값은 자정이어도 datetime 으로 둔다.
    date_from: Optional[Union[datetime, date]] = None
    date_to: Optional[Union[datetime, date]] = None
    sort: Literal["newest", "oldest", "type"] = "newest"

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def parse_date_bound(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            if DATE_ONLY_PATTERN.match(value):
                return date.fromisoformat(value)
        return value


class NotificationPageOut(BaseModel):
    notifications: List[NotificationOut]
    total_count: int
    has_more: bool


class NotificationCursorPageOut(BaseModel):
    notifications: List[NotificationOut]
    has_more: bool
    next_cursor: Optional[int]


class NotificationIdsIn(BaseModel):
    notification_ids: List[int] = Field(..., max_length=10000)


class NotificationBulkReadIn(NotificationIdsIn):
    batch_size: Optional[int] = Field(None, ge=1)


class BulkCountOut(BaseModel):
    count: int


class BulkBatchResultOut(BaseModel):
    count: int
    batches: int


class TypeCountOut(BaseModel):
    type: str
    count: int


class NotificationStatsOut(BaseModel):
    total: int
    unread: int
    read: int
    by_type: List[TypeCountOut]


class NotificationCountsOut(BaseModel):
    total: int
    unread: int
    urgent: int


class DailyCountOut(BaseModel):
    date: str
    count: int


class NotificationAnalyticsOut(BaseModel):
    total_count: int
    unread_count: int
    read_count: int
    read_rate: float
    type_distribution: List[TypeCountOut]
    daily_activity: List[DailyCountOut]


class NotificationPreferenceOut(BaseModel):
    email_enabled: bool
    email_types: List[str]
    push_enabled: bool
    push_types: List[str]
    in_app_enabled: bool
    in_app_types: List[str]
    email_frequency: Literal["immediate", "hourly", "daily", "weekly"]
    digest_enabled: bool
    quiet_hours_enabled: bool
    quiet_hours_start: Optional[str]
    quiet_hours_end: Optional[str]
    marketing_enabled: bool
    promotional_enabled: bool

    model_config = {"from_attributes": True}


class NotificationPreferenceUpdate(BaseModel):
    email_enabled: Optional[bool] = None
    email_types: Optional[List[str]] = None
    push_enabled: Optional[bool] = None
    push_types: Optional[List[str]] = None
    in_app_enabled: Optional[bool] = None
    in_app_types: Optional[List[str]] = None
    email_frequency: Optional[Literal["immediate", "hourly", "daily", "weekly"]] = None
    digest_enabled: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    marketing_enabled: Optional[bool] = None
    promotional_enabled: Optional[bool] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def validate_time_of_day(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if not TIME_OF_DAY_PATTERN.match(value):
            raise ValueError("시간은 HH:MM 형식이어야 합니다.")
        return value


class DeliveryCheckOut(BaseModel):
    type: str
    channel: str
    allowed: bool
    in_quiet_hours: bool
