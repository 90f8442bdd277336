"""이미 연결된 클라이언트에게 알림 이벤트를 best-effort 로 밀어주는 전달 채널입니다.

채널은 요청마다 주입되며(`app.state.delivery_channel`), 설정되지 않았으면 아무 일도 하지 않습니다.
전송 실패는 기록만 하고 원래 작업의 결과에는 영향을 주지 않습니다.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Optional, Protocol, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class DeliveryChannel(Protocol):
    def send_to_user(self, user_id: int, event: dict) -> None:
        ...


class NullDeliveryChannel:
    def send_to_user(self, user_id: int, event: dict) -> None:
        return None


class WebSocketConnectionManager:
    """사용자별 활성 WebSocket 집합을 관리한다."""

    def __init__(self) -> None:
        self._user_sockets: Dict[int, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._user_sockets.setdefault(user_id, set()).add(websocket)

    async def disconnect(self, user_id: int, websocket: WebSocket):
        async with self._lock:
            conns = self._user_sockets.get(user_id)
            if conns and websocket in conns:
                conns.remove(websocket)
                if not conns:
                    self._user_sockets.pop(user_id, None)

    def connection_count(self, user_id: int) -> int:
        return len(self._user_sockets.get(user_id, ()))

    async def send_to_user(self, user_id: int, payload: dict):
        # 사용자의 모든 탭/세션으로 보낸다.
        message = json.dumps(payload, ensure_ascii=False, default=str)
        async with self._lock:
            conns = list(self._user_sockets.get(user_id, []))
        for ws in conns:
            try:
                await ws.send_text(message)
            except Exception as exc:
                logger.warning("[delivery] dropping dead socket for user %s: %s", user_id, exc)
                await self.disconnect(user_id, ws)


class WebSocketDeliveryChannel:
    """동기 서비스 코드에서 호출해도 앱 이벤트 루프로 전송을 넘기고 즉시 반환한다."""

    def __init__(self, manager: WebSocketConnectionManager, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.manager = manager
        self.loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop

    def send_to_user(self, user_id: int, event: dict) -> None:
        if self.loop is None or self.loop.is_closed():
            logger.debug("[delivery] no running loop, skipped %s for user %s", event.get("type"), user_id)
            return
        future = asyncio.run_coroutine_threadsafe(self.manager.send_to_user(user_id, event), self.loop)
        future.add_done_callback(lambda f: _log_failure(f, user_id, event))


def _log_failure(future, user_id: int, event: dict) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("[delivery] push %s to user %s failed: %s", event.get("type"), user_id, exc)


def notify_user(channel: Optional[DeliveryChannel], user_id: int, event: dict) -> None:
    if channel is None:
        return
    try:
        channel.send_to_user(user_id, event)
    except Exception as exc:
        logger.warning("[delivery] push %s to user %s failed: %s", event.get("type"), user_id, exc)
