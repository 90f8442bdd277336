"""FastAPI 애플리케이션 진입점. 미들웨어, API 라우터, 알림 전달 채널을 등록합니다."""

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database import Base, engine
import app.models  # noqa: F401 - 모델 import로 metadata 등록
from app.routers import auth, notifications
from app.services.delivery import WebSocketConnectionManager, WebSocketDeliveryChannel

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="알림 센터 API",
    description="알림 검색/필터, 페이지네이션, 수신 설정, 일괄 처리 API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.ws_manager = WebSocketConnectionManager()
app.state.delivery_channel = WebSocketDeliveryChannel(app.state.ws_manager)

app.include_router(auth.router)
app.include_router(notifications.router)


@app.on_event("startup")
async def startup():
    Base.metadata.create_all(bind=engine)
    # 동기 라우트(스레드풀)에서 보낸 이벤트를 이 루프로 넘긴다.
    app.state.delivery_channel.bind_loop(asyncio.get_running_loop())
    logger.info("[notifications] service started (db=%s)", settings.DATABASE_URL.split("://", 1)[0])


@app.get("/api/health")
def health_check():
    return {"status": "ok", "service": "알림 센터 API"}
