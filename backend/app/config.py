"""환경 변수 기반 애플리케이션 설정을 중앙에서 관리합니다."""

from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./notifications.db"
    SECRET_KEY: str = "change-me-to-a-random-secret-key"
    DEBUG: bool = True
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]
    LOG_LEVEL: str = "INFO"

    # JWT
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Notification query / bulk
    NOTIFICATION_DEFAULT_PAGE_SIZE: int = 20
    NOTIFICATION_MAX_PAGE_SIZE: int = 100
    NOTIFICATION_BULK_BATCH_SIZE: int = 100
    NOTIFICATION_RECENT_LIMIT: int = 10
    NOTIFICATION_ANALYTICS_DAYS: int = 30

    def clamp_page_size(self, limit: int | None) -> int:
        if limit is None:
            return self.NOTIFICATION_DEFAULT_PAGE_SIZE
        return max(1, min(int(limit), self.NOTIFICATION_MAX_PAGE_SIZE))

    class Config:
        # 실행 cwd와 무관하게 backend/.env를 로드한다.
        env_file = str(Path(__file__).resolve().parents[1] / ".env")


settings = Settings()
