"""사번 로그인으로 알림 API용 access token 을 발급합니다.

토큰의 ``sub`` 는 user_id 이며, 알림 조회/변경과 WebSocket 접속의 소유자 범위가 된다.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, status
from jose import jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.middleware.auth_middleware import ALGORITHM
from app.models.user import User

logger = logging.getLogger(__name__)


def find_active_user(db: Session, emp_id: str) -> Optional[User]:
    return db.query(User).filter(User.emp_id == emp_id.strip(), User.is_active == True).first()


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(user.user_id),
        "emp_id": user.emp_id,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def login(db: Session, emp_id: str) -> dict:
    user = find_active_user(db, emp_id)
    if user is None:
        logger.info("[auth] login rejected for emp_id %r", emp_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"사번 '{emp_id}'에 해당하는 활성 사용자를 찾을 수 없습니다.",
        )
    logger.info("[auth] issued token for user %s", user.user_id)
    return {
        "access_token": create_access_token(user),
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": user,
    }
